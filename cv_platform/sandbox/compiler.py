"""
Preview Compiler - turns project modules into factories the preview runtime can execute.

This module handles:
- Rewriting import statements into explicit `__resolve(...)` bindings
- Rewriting export statements onto an `__exports` object
- Stripping client/server directives, type-only imports and stylesheet imports
- Binding identifiers that were never imported (JSX components, hooks, values)
  so unknown names fall back to stubs in the browser instead of throwing

Every binding is listed in the module's symbol table. Type annotations and JSX
are left for Babel in the browser. Compilation never raises: a module that
cannot be transformed is marked with an error and shown in the overlay.
"""

import json
import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Mapping, Optional, Set

import structlog

from cv_platform.sandbox.libraries import LibraryRegistry, get_registry
from cv_platform.validator import (
    IMPORT_STMT_RE,
    JSX_ROOT_RE,
    declared_names,
    mask_comments,
)


logger = structlog.get_logger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

SCRIPT_EXTENSIONS = (".tsx", ".ts", ".jsx", ".js")
RESOLVE_SUFFIXES = ("", ".tsx", ".ts", ".jsx", ".js", "/index.tsx", "/index.ts", "/index.jsx", "/index.js")

ENTRY_CANDIDATES = ("/src/main.tsx", "/src/main.jsx", "/src/index.tsx", "/src/index.jsx", "/main.tsx", "/index.tsx")
APP_CANDIDATES = ("/src/App.tsx", "/src/App.jsx", "/App.tsx", "/App.jsx", "/src/app.tsx")

# Browser and language globals that must never be shadowed by a stub
JS_GLOBALS = {
    "Array", "ArrayBuffer", "BigInt", "Boolean", "Date", "Error", "Event", "Function",
    "HTMLElement", "HTMLDivElement", "HTMLInputElement", "Image", "Infinity",
    "IntersectionObserver", "Intl", "JSON", "Map", "Math", "MutationObserver", "NaN",
    "Number", "Object", "Promise", "Proxy", "RangeError", "Reflect", "RegExp",
    "ResizeObserver", "Set", "String", "Symbol", "TypeError", "URL", "URLSearchParams",
    "WeakMap", "WeakSet", "React", "ReactDOM", "Element", "Node", "Window", "Document",
    "MouseEvent", "KeyboardEvent", "TouchEvent", "HTMLButtonElement", "HTMLAnchorElement",
    "HTMLCanvasElement", "HTMLVideoElement", "SVGSVGElement", "FormData", "Blob", "File",
}

DIRECTIVE_RE = re.compile(r"""^[ \t]*(['"])use (?:client|server)\1[ \t]*;?[ \t]*\n?""", re.MULTILINE)
IMPORT_PARTS_RE = re.compile(r"""^\s*import\s+(type\s+)?([\s\S]*?)\s+from\s*(['"])(.+?)\3""")
SIDE_EFFECT_IMPORT_RE = re.compile(r"""^\s*import\s*(['"])(.+?)\1""")

EXPORT_DEFAULT_FUNCTION_RE = re.compile(
    r"^([ \t]*)export\s+default\s+((?:async\s+)?function\b\s*\*?\s*)([A-Za-z_$][\w$]*)?", re.MULTILINE
)
EXPORT_DEFAULT_CLASS_RE = re.compile(r"^([ \t]*)export\s+default\s+(class\b\s*)([A-Za-z_$][\w$]*)?", re.MULTILINE)
EXPORT_DEFAULT_RE = re.compile(r"^([ \t]*)export\s+default\s+", re.MULTILINE)
EXPORT_DECLARATION_RE = re.compile(
    r"^([ \t]*)export\s+((?:async\s+)?(?:function\*?|class|const|let|var|enum)\s+)([A-Za-z_$][\w$]*)", re.MULTILINE
)
EXPORT_TYPE_RE = re.compile(r"^([ \t]*)export\s+(?=(?:type|interface|declare|abstract)\b)", re.MULTILINE)
EXPORT_TYPE_LIST_RE = re.compile(r"""^[ \t]*export\s+type\s*\{[^}]*\}(?:\s*from\s*['"][^'"]+['"])?[ \t]*;?""", re.MULTILINE)
EXPORT_FROM_RE = re.compile(r"""^([ \t]*)export\s*\{([^}]*)\}\s*from\s*(['"])(.+?)\3[ \t]*;?""", re.MULTILINE)
EXPORT_ALL_RE = re.compile(r"""^([ \t]*)export\s*\*\s*(?:as\s+([\w$]+)\s+)?from\s*(['"])(.+?)\3[ \t]*;?""", re.MULTILINE)
EXPORT_LIST_RE = re.compile(r"^([ \t]*)export\s*\{([^}]*)\}[ \t]*;?", re.MULTILINE)

REACT_DECLARED_RE = re.compile(r"\b(?:const|let|var|function|class)\s+React\b")
HOOK_CALL_RE = re.compile(r"(?<![\w$.])(use[A-Z][\w$]*)\s*(?:<[^>()]*>)?\s*\(")
VALUE_REF_RE = re.compile(r"(?:[:=(,\[?]|\breturn)\s*([A-Z][\w$]*)(?=\s*[,)\]};])")


# =============================================================================
# DATA CLASSES
# =============================================================================

BindingKind = Literal["library", "module", "global", "stub"]


@dataclass(frozen=True)
class SymbolBinding:
    """How one local name of a module is resolved at execution time."""
    local: str
    kind: BindingKind
    name: str  # exported name, "default", or "*" for the whole namespace
    module: Optional[str] = None  # library specifier or resolved project path
    library_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "local": self.local,
            "kind": self.kind,
            "name": self.name,
            "module": self.module,
            "libraryKind": self.library_kind,
        }

    def statement(self) -> str:
        return f"const {self.local} = __resolve({json.dumps(self.to_dict())});"


@dataclass
class CompiledModule:
    """A project module rewritten for the preview runtime."""
    path: str
    code: str = ""
    bindings: List[SymbolBinding] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    stylesheets: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def binding(self, local: str) -> Optional[SymbolBinding]:
        for binding in self.bindings:
            if binding.local == local:
                return binding
        return None

    def to_dict(self) -> Dict:
        return {"code": self.code, "error": self.error}


@dataclass
class CompiledBundle:
    """Everything the preview document needs to run a project."""
    modules: Dict[str, CompiledModule]
    stylesheets: Dict[str, str]
    entry: Optional[str] = None
    app: Optional[str] = None

    def to_runtime(self, registry: Optional[LibraryRegistry] = None) -> Dict:
        registry = registry or get_registry()
        icon_names: Set[str] = set()
        for entry in registry.entries:
            if entry.kind == "icons":
                icon_names.update(entry.exports)
        return {
            "entry": self.entry,
            "app": self.app,
            "modules": {path: module.to_dict() for path, module in self.modules.items()},
            "libraries": registry.runtime_table(),
            "order": registry.resolution_order(),
            "iconNames": sorted(icon_names),
        }


# =============================================================================
# MODULE RESOLUTION
# =============================================================================

def resolve_module_path(importer: str, specifier: str, files: Mapping[str, str]) -> Optional[str]:
    """
    Resolve a relative, absolute or `@/` specifier to a project path.

    Args:
        importer: Path of the importing module
        specifier: Import specifier as written
        files: Project files (paths are the candidates)

    Returns:
        Matching project path, or None
    """
    if specifier.startswith("@/"):
        base = "/src/" + specifier[2:]
    elif specifier.startswith("/"):
        base = specifier
    elif specifier.startswith("."):
        base = posixpath.normpath(posixpath.join(posixpath.dirname(importer), specifier))
    else:
        return None

    for suffix in RESOLVE_SUFFIXES:
        candidate = base + suffix
        if candidate in files:
            return candidate
    return None


def _is_local_specifier(specifier: str) -> bool:
    return specifier.startswith((".", "/", "@/"))


def _import_specs(clause: str) -> List[tuple]:
    """(local, imported) pairs for an import clause; imported is 'default' or '*' for those forms."""
    specs = []
    braces = re.search(r"\{([^}]*)\}", clause)
    rest = clause
    if braces:
        for part in braces.group(1).split(","):
            part = part.strip()
            if not part or re.match(r"type\s+", part):
                continue
            pieces = re.split(r"\s+as\s+", part)
            specs.append((pieces[-1].strip(), pieces[0].strip()))
        rest = clause[:braces.start()] + clause[braces.end():]
    namespace = re.search(r"\*\s*as\s+([\w$]+)", rest)
    if namespace:
        specs.append((namespace.group(1), "*"))
        rest = rest.replace(namespace.group(0), "")
    for part in rest.split(","):
        part = part.strip()
        if re.fullmatch(r"[\w$]+", part):
            specs.insert(0, (part, "default"))
    return specs


# =============================================================================
# COMPILER
# =============================================================================

class ModuleCompiler:
    """Compiles the modules of one project snapshot."""

    def __init__(self, files: Mapping[str, str], registry: Optional[LibraryRegistry] = None):
        self.files = files
        self.registry = registry or get_registry()

    def _binding_for(self, importer: str, local: str, imported: str, specifier: str) -> SymbolBinding:
        entry = self.registry.get(specifier)
        if entry is not None:
            return SymbolBinding(local, "library", imported, specifier, entry.kind)
        if _is_local_specifier(specifier):
            resolved = resolve_module_path(importer, specifier, self.files)
            if resolved is not None:
                return SymbolBinding(local, "module", imported, resolved)
        return SymbolBinding(local, "stub", imported, specifier)

    def _rewrite_imports(self, module: CompiledModule, code: str) -> str:
        def replace(match: re.Match) -> str:
            statement = match.group(0)
            parts = IMPORT_PARTS_RE.match(statement)
            if parts is None:
                side_effect = SIDE_EFFECT_IMPORT_RE.match(statement)
                if side_effect:
                    self._note_side_effect(module, side_effect.group(2))
                return ""
            if parts.group(1):  # import type
                return ""
            specifier = parts.group(4)
            statements = []
            for local, imported in _import_specs(parts.group(2)):
                binding = self._binding_for(module.path, local, imported, specifier)
                module.bindings.append(binding)
                statements.append(binding.statement())
                if binding.kind == "module" and binding.module not in module.dependencies:
                    module.dependencies.append(binding.module)
            return "\n".join(statements)

        return IMPORT_STMT_RE.sub(replace, code)

    def _note_side_effect(self, module: CompiledModule, specifier: str) -> None:
        if specifier.endswith(".css"):
            resolved = resolve_module_path(module.path, specifier, self.files)
            if resolved:
                module.stylesheets.append(resolved)

    def _rewrite_exports(self, module: CompiledModule, code: str) -> str:
        trailer: List[str] = []

        def reexport(match: re.Match) -> str:
            indent, names, specifier = match.group(1), match.group(2), match.group(4)
            lines = []
            for part in names.split(","):
                part = part.strip()
                if not part or part.startswith("type "):
                    continue
                pieces = re.split(r"\s+as\s+", part)
                imported, exported = pieces[0].strip(), pieces[-1].strip()
                binding = self._binding_for(module.path, f"__reexport_{exported}", imported, specifier)
                module.bindings.append(binding)
                module.exports.append(exported)
                lines.append(f"{indent}__exports.{exported} = __resolve({json.dumps(binding.to_dict())});")
            return "\n".join(lines)

        def reexport_all(match: re.Match) -> str:
            indent, alias, specifier = match.group(1), match.group(2), match.group(4)
            binding = self._binding_for(module.path, alias or "__reexport_all", "*", specifier)
            module.bindings.append(binding)
            if alias:
                module.exports.append(alias)
                return f"{indent}__exports.{alias} = __resolve({json.dumps(binding.to_dict())});"
            return f"{indent}Object.assign(__exports, __resolve({json.dumps(binding.to_dict())}));"

        def export_list(match: re.Match) -> str:
            for part in match.group(2).split(","):
                part = part.strip()
                if not part or part.startswith("type "):
                    continue
                pieces = re.split(r"\s+as\s+", part)
                local, exported = pieces[0].strip(), pieces[-1].strip()
                module.exports.append(exported)
                trailer.append(f"__exports.{exported} = {local};")
            return ""

        def default_named(match: re.Match) -> str:
            indent, keyword, name = match.group(1), match.group(2), match.group(3)
            module.exports.append("default")
            if name:
                trailer.append(f"__exports.default = {name};")
                return f"{indent}{keyword}{name}"
            return f"{indent}__exports.default = {keyword}"

        def declaration(match: re.Match) -> str:
            indent, keyword, name = match.group(1), match.group(2), match.group(3)
            module.exports.append(name)
            trailer.append(f"__exports.{name} = {name};")
            return f"{indent}{keyword}{name}"

        def default_expression(match: re.Match) -> str:
            module.exports.append("default")
            return f"{match.group(1)}__exports.default = "

        code = EXPORT_TYPE_LIST_RE.sub("", code)
        code = EXPORT_FROM_RE.sub(reexport, code)
        code = EXPORT_ALL_RE.sub(reexport_all, code)
        code = EXPORT_LIST_RE.sub(export_list, code)
        code = EXPORT_DEFAULT_FUNCTION_RE.sub(default_named, code)
        code = EXPORT_DEFAULT_CLASS_RE.sub(default_named, code)
        code = EXPORT_DEFAULT_RE.sub(default_expression, code)
        code = EXPORT_TYPE_RE.sub(lambda m: m.group(1), code)
        code = EXPORT_DECLARATION_RE.sub(declaration, code)

        if trailer:
            code = code.rstrip("\n") + "\n\n" + "\n".join(trailer) + "\n"
        return code

    def _free_names(self, original: str, bound: Set[str]) -> List[str]:
        """Names used as components, hooks or values that nothing binds."""
        masked = mask_comments(original)
        candidates: List[str] = []
        for match in JSX_ROOT_RE.finditer(masked):
            root, member = match.group(1), match.group(2)
            if root[0].isupper() or member:
                candidates.append(root)
        candidates.extend(HOOK_CALL_RE.findall(masked))
        candidates.extend(VALUE_REF_RE.findall(masked))

        free = []
        for name in dict.fromkeys(candidates):
            if name in bound or name in JS_GLOBALS:
                continue
            free.append(name)
        return free

    def compile_module(self, path: str) -> CompiledModule:
        """
        Compile one module. Never raises.

        Args:
            path: Project path of a script module

        Returns:
            CompiledModule; `error` is set when the source could not be transformed
        """
        module = CompiledModule(path=path)
        original = self.files.get(path, "")
        try:
            code = DIRECTIVE_RE.sub("", original)
            code = self._rewrite_imports(module, code)
            code = self._rewrite_exports(module, code)

            locals_ = {b.local for b in module.bindings}
            bound = declared_names(original) | locals_
            prelude: List[str] = []
            if "React" not in locals_ and not REACT_DECLARED_RE.search(mask_comments(original)):
                react = SymbolBinding("React", "library", "*", "react", "runtime")
                module.bindings.insert(0, react)
                prelude.append(react.statement())
            for name in self._free_names(original, bound):
                binding = SymbolBinding(name, "global", name)
                module.bindings.append(binding)
                prelude.append(binding.statement())

            module.code = "\n".join(prelude + [code]) if prelude else code
        except Exception as e:
            logger.warning("module_compile_failed", path=path, error=str(e))
            module.code = ""
            module.error = f"Could not prepare {path} for preview: {e}"
        return module


def _first_existing(candidates, files: Mapping[str, str]) -> Optional[str]:
    for candidate in candidates:
        if candidate in files:
            return candidate
    return None


def compile_project(files: Mapping[str, str], registry: Optional[LibraryRegistry] = None) -> CompiledBundle:
    """
    Compile every script module of a project snapshot.

    Args:
        files: Read-only ProjectFileSet snapshot
        registry: Library whitelist (global registry by default)

    Returns:
        CompiledBundle with modules, stylesheets, entry and App paths
    """
    compiler = ModuleCompiler(files, registry)
    modules = {
        path: compiler.compile_module(path)
        for path in files
        if path.endswith(SCRIPT_EXTENSIONS) and not path.endswith(".d.ts")
    }
    stylesheets = {path: content for path, content in files.items() if path.endswith(".css")}

    bundle = CompiledBundle(
        modules=modules,
        stylesheets=stylesheets,
        entry=_first_existing(ENTRY_CANDIDATES, files),
        app=_first_existing(APP_CANDIDATES, files),
    )
    failed = [path for path, module in modules.items() if module.error]
    logger.debug("project_compiled", modules=len(modules), stylesheets=len(stylesheets), failed=failed)
    return bundle
