"""Tests for the preview compiler and library registry."""

from cv_platform.sandbox.compiler import ModuleCompiler, compile_project, resolve_module_path
from cv_platform.sandbox.libraries import DEFAULT_ICON_MODULE, LibraryRegistry, get_registry


MAIN = """import React from 'react';
import ReactDOM from 'react-dom/client';
import App from './App';
import './index.css';

ReactDOM.createRoot(document.getElementById('root')!).render(<App />);
"""

APP = """'use client';

import Hero from './components/Hero';
import { Button } from '@/components/ui/button';
import type { FC } from 'react';

export default function App() {
  return (
    <main><Hero /><Button /></main>
  );
}
"""

FILES = {
    "/src/main.tsx": MAIN,
    "/src/App.tsx": APP,
    "/src/components/Hero.tsx": "export default function Hero() { return <h1>Hi</h1>; }",
    "/src/components/ui/button.tsx": "export const Button = () => <button type=\"submit\">Go</button>;",
    "/src/components/index.ts": "export { default as Hero } from './Hero';",
    "/src/lib/utils.ts": "export const cn = (...xs) => xs.join(' ');",
    "/src/types.d.ts": "declare module 'x';",
    "/src/index.css": "body { margin: 0; }",
}


def compile_one(path, content, files=None):
    files = dict(files or {})
    files[path] = content
    return ModuleCompiler(files).compile_module(path)


class TestResolveModulePath:

    def test_relative_with_extension_search(self):
        assert resolve_module_path("/src/components/Hero.tsx", "../lib/utils", FILES) == "/src/lib/utils.ts"

    def test_directory_index(self):
        assert resolve_module_path("/src/App.tsx", "./components", FILES) == "/src/components/index.ts"

    def test_alias(self):
        assert resolve_module_path("/src/App.tsx", "@/components/ui/button", FILES) == "/src/components/ui/button.tsx"

    def test_bare_and_missing(self):
        assert resolve_module_path("/src/App.tsx", "react", FILES) is None
        assert resolve_module_path("/src/App.tsx", "./Missing", FILES) is None


class TestCompileModule:
    """Import/export rewriting and symbol binding."""

    def test_unknown_package_becomes_stub(self):
        source = """import { Sparkles } from 'some-unknown-lib';

export default function Hero() {
  return (
    <div><Sparkles /></div>
  );
}
"""
        module = compile_one("/src/components/Hero.tsx", source)
        assert module.error is None
        binding = module.binding("Sparkles")
        assert binding.kind == "stub"
        assert binding.module == "some-unknown-lib"
        assert binding.name == "Sparkles"
        assert "const Sparkles = __resolve(" in module.code
        assert "import " not in module.code

    def test_missing_project_module_becomes_stub(self):
        module = compile_one("/src/App.tsx", "import Gallery from './components/Gallery';\n")
        assert module.binding("Gallery").kind == "stub"
        assert module.dependencies == []

    def test_library_imports(self):
        source = "import { motion, AnimatePresence as AP } from 'framer-motion';\nimport * as Icons from 'lucide-react';\n"
        module = compile_one("/src/components/Hero.tsx", source)
        motion = module.binding("motion")
        assert (motion.kind, motion.name, motion.module, motion.library_kind) == (
            "library", "motion", "framer-motion", "animation"
        )
        assert module.binding("AP").name == "AnimatePresence"
        assert module.binding("Icons").name == "*"
        assert module.binding("Icons").library_kind == "icons"

    def test_project_imports(self):
        module = ModuleCompiler(FILES).compile_module("/src/App.tsx")
        hero = module.binding("Hero")
        assert (hero.kind, hero.name, hero.module) == ("module", "default", "/src/components/Hero.tsx")
        assert module.binding("Button").module == "/src/components/ui/button.tsx"
        assert module.dependencies == ["/src/components/Hero.tsx", "/src/components/ui/button.tsx"]

    def test_type_imports_and_directive_are_dropped(self):
        module = ModuleCompiler(FILES).compile_module("/src/App.tsx")
        assert module.binding("FC") is None
        assert "use client" not in module.code

    def test_stylesheet_import(self):
        module = ModuleCompiler(FILES).compile_module("/src/main.tsx")
        assert module.stylesheets == ["/src/index.css"]
        assert "index.css" not in module.code

    def test_default_function_export(self):
        module = ModuleCompiler(FILES).compile_module("/src/App.tsx")
        assert module.exports == ["default"]
        assert "export " not in module.code
        assert "function App()" in module.code
        assert module.code.rstrip().endswith("__exports.default = App;")

    def test_named_and_expression_exports(self):
        source = "export const a = 1;\nexport function b() {}\nconst c = 3;\nexport { c as d };\nexport default a;\n"
        module = compile_one("/src/lib/values.ts", source)
        assert sorted(module.exports) == ["a", "b", "d", "default"]
        assert "__exports.default = a;" in module.code
        assert "__exports.a = a;" in module.code
        assert "__exports.b = b;" in module.code
        assert "__exports.d = c;" in module.code

    def test_reexport(self):
        module = ModuleCompiler(FILES).compile_module("/src/components/index.ts")
        assert module.exports == ["Hero"]
        assert "__exports.Hero = __resolve(" in module.code
        assert module.binding("__reexport_Hero").module == "/src/components/Hero.tsx"

    def test_react_binding_added_once(self):
        without = compile_one("/src/components/Hero.tsx", "export default function Hero() { return <h1>Hi</h1>; }")
        assert without.bindings[0].local == "React"
        assert without.bindings[0].name == "*"
        assert without.code.startswith("const React = __resolve(")

        with_import = ModuleCompiler(FILES).compile_module("/src/main.tsx")
        assert [b.local for b in with_import.bindings].count("React") == 1

    def test_free_names_bound_as_globals(self):
        source = """export default function Hero() {
  const { scrollY } = useScroll();
  const theme = Palette;
  const limit = Infinity;
  return (
    <div><Sparkle /><Unknown.Thing /></div>
  );
}
"""
        module = compile_one("/src/components/Hero.tsx", source)
        free = [b.local for b in module.bindings if b.kind == "global"]
        assert free == ["Sparkle", "Unknown", "useScroll", "Palette"]
        assert module.binding("Infinity") is None

    def test_declared_names_are_not_rebound(self):
        source = "const Card = () => <div />;\nexport default function List() { return <Card />; }\n"
        module = compile_one("/src/components/List.tsx", source)
        assert module.binding("Card") is None

    def test_never_raises(self):
        module = compile_one("/src/Broken.tsx", "export default function (\nimport {")
        assert module.path == "/src/Broken.tsx"


class TestCompileProject:

    def test_bundle(self):
        bundle = compile_project(FILES)
        assert bundle.entry == "/src/main.tsx"
        assert bundle.app == "/src/App.tsx"
        assert "/src/types.d.ts" not in bundle.modules
        assert "/src/index.css" not in bundle.modules
        assert bundle.stylesheets == {"/src/index.css": "body { margin: 0; }"}

    def test_runtime_payload(self):
        runtime = compile_project(FILES).to_runtime()
        assert set(runtime) == {"entry", "app", "modules", "libraries", "order", "iconNames"}
        assert runtime["modules"]["/src/App.tsx"]["error"] is None
        assert runtime["libraries"]["react-dom/client"] == {"global": "ReactDOM", "kind": "runtime"}
        assert runtime["order"][0] == "react"
        assert "ArrowRight" in runtime["iconNames"]

    def test_input_is_not_modified(self):
        files = dict(FILES)
        compile_project(files)
        assert files == FILES


class TestLibraryRegistry:

    def test_aliases(self):
        registry = LibraryRegistry()
        assert registry.get("react-dom/client").module == "react-dom"
        assert registry.get("phosphor-react").module == "@phosphor-icons/react"
        assert registry.is_whitelisted("react-icons/fa")
        assert not registry.is_whitelisted("lodash")

    def test_module_for_export(self):
        registry = get_registry()
        assert registry.module_for_export("motion") == "framer-motion"
        assert registry.module_for_export("Fragment") == "react"
        assert registry.module_for_export("ArrowRight") == DEFAULT_ICON_MODULE
        assert registry.module_for_export("ArrowRight", prefer=["lucide-react"]) == "lucide-react"
        assert registry.module_for_export("Mail") == "lucide-react"
        assert registry.module_for_export("Mystery") is None

    def test_icon_exports(self):
        registry = get_registry()
        assert registry.is_icon_export("GithubLogo")
        assert not registry.is_icon_export("motion")

    def test_script_urls(self):
        urls = get_registry().script_urls()
        assert "react@18" in urls[0]
        assert "react-dom@18" in urls[1]
        assert all(url.startswith("https://") for url in urls)

    def test_stub_only_package(self):
        entry = get_registry().get("@phosphor-icons/react")
        assert entry.global_name is None
        assert entry.to_runtime() == {"global": None, "kind": "icons"}
