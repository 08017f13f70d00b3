"""
Site Builder - generates the first version of a portfolio from a brief.

One model call produces every file in the file-block format; the result goes
through the same parse -> validate -> repair -> re-validate pipeline as an
editing turn. When the model call fails a deterministic fallback site is
returned so the editor never opens on an empty project.
"""

import json
import time
from typing import List, Optional, Sequence

import structlog

from cv_platform.llm.openai_client import ModelClient
from cv_platform.parser import parse_reply
from cv_platform.repair import auto_fix_errors
from cv_platform.schemas import (
    Brief,
    BuildResult,
    ChatTurn,
    FileUpdate,
    Moodboard,
    SpecDocument,
    ThoughtStep,
)
from cv_platform.utils import load_prompt
from cv_platform.validator import detect_errors


logger = structlog.get_logger(__name__)


# =============================================================================
# PROMPT
# =============================================================================

def _find_spec(specs: Sequence[SpecDocument], marker: str) -> str:
    for spec in specs:
        if marker in spec.path.upper():
            return spec.content
    return ""


def build_user_message(brief: Brief, moodboard: Moodboard, specs: Sequence[SpecDocument]) -> str:
    """
    Describe the person, the visual direction and the planning documents.

    Args:
        brief: Who the site is for
        moodboard: Palette, typography and motion profile
        specs: Style guide / requirements / section specs (any may be missing)
    """
    personal = brief.personal
    lines = [
        "## PERSON",
        f"Name: {personal.name}",
        f"Role: {personal.role}",
    ]
    if personal.tagline:
        lines.append(f"Tagline: {personal.tagline}")
    if personal.bio:
        lines.append(f"Bio: {personal.bio}")
    if personal.location:
        lines.append(f"Location: {personal.location}")
    if personal.email:
        lines.append(f"Email: {personal.email}")
    for network, url in brief.socials.items():
        lines.append(f"{network}: {url}")

    if brief.work:
        lines.extend(["", "## WORK"])
        for item in brief.work:
            entry = f"- {item.title}"
            if item.role:
                entry += f" ({item.role})"
            if item.description:
                entry += f": {item.description}"
            if item.link:
                entry += f" [{item.link}]"
            lines.append(entry)

    palette = moodboard.color_palette
    typography = moodboard.typography
    lines.extend([
        "",
        "## VISUAL DIRECTION",
        moodboard.visual_direction or brief.style.vibe or "Clean and modern",
        f"Colors: primary {palette.primary}, secondary {palette.secondary}, accent {palette.accent}, "
        f"background {palette.background}, surface {palette.surface}, text {palette.text}",
        f"Fonts: headings {typography.heading_font}, body {typography.body_font}, mono {typography.mono_font}",
        f"Motion profile: {moodboard.motion.profile}",
    ])
    if brief.style.likes:
        lines.append(f"Likes: {', '.join(brief.style.likes)}")
    if brief.style.dislikes:
        lines.append(f"Avoid: {', '.join(brief.style.dislikes)}")

    for title, marker in (
        ("STYLE GUIDE", "STYLE_GUIDE"),
        ("REQUIREMENTS", "REQUIREMENTS"),
        ("SECTION SPECS", "SECTION_SPECS"),
    ):
        content = _find_spec(specs, marker)
        if content:
            lines.extend(["", f"## {title}", content.strip()])

    lines.extend(["", "Generate the complete site now."])
    return "\n".join(lines)


def _system_prompt() -> str:
    return "\n\n".join([
        load_prompt("builder_system.txt").strip(),
        load_prompt("technical_constraints.txt").strip(),
        load_prompt("motion_system.txt").strip(),
    ])


# =============================================================================
# FALLBACK SITE
# =============================================================================

def _js(value: str) -> str:
    """JSX expression rendering `value` as literal text."""
    return "{" + json.dumps(value) + "}"


def create_fallback_site(brief: Brief, moodboard: Moodboard) -> List[FileUpdate]:
    """Minimal but complete site built from the brief without a model."""
    personal = brief.personal
    palette = moodboard.color_palette
    email = personal.email or "hello@example.com"
    projects = [{"title": w.title, "description": w.description, "link": w.link} for w in brief.work]

    index_css = f"""@tailwind base;
@tailwind components;
@tailwind utilities;

:root {{
  --color-primary: {palette.primary};
  --color-secondary: {palette.secondary};
  --color-accent: {palette.accent};
  --color-background: {palette.background};
  --color-foreground: {palette.text};
  --color-surface: {palette.surface};
}}

body {{
  background: var(--color-background);
  color: var(--color-foreground);
  font-family: '{moodboard.typography.body_font}', sans-serif;
}}
"""

    main_tsx = """import React from 'react';
import ReactDOM from 'react-dom/client';
import App from './App';
import './index.css';

ReactDOM.createRoot(document.getElementById('root')!).render(
  <React.StrictMode>
    <App />
  </React.StrictMode>,
);
"""

    app_tsx = """import Hero from './components/Hero';
import About from './components/About';
import Projects from './components/Projects';
import Contact from './components/Contact';

export default function App() {
  return (
    <main className="min-h-screen">
      <Hero />
      <About />
      <Projects />
      <Contact />
    </main>
  );
}
"""

    hero_tsx = f"""export default function Hero() {{
  return (
    <section id="hero" className="min-h-screen flex items-center justify-center px-6">
      <div className="text-center max-w-4xl">
        <h1 className="text-5xl md:text-7xl font-bold mb-6">{_js(personal.name)}</h1>
        <p className="text-xl md:text-2xl opacity-80 mb-4">{_js(personal.role)}</p>
      </div>
    </section>
  );
}}
"""

    about_tsx = f"""export default function About() {{
  return (
    <section id="about" className="py-24 px-6">
      <div className="max-w-4xl mx-auto">
        <h2 className="text-3xl font-bold mb-8">About Me</h2>
        <p className="text-lg leading-relaxed">{_js(personal.bio or "Passionate about building great things.")}</p>
      </div>
    </section>
  );
}}
"""

    projects_tsx = f"""const projects = {json.dumps(projects, indent=2)};

export default function Projects() {{
  return (
    <section id="projects" className="py-24 px-6">
      <div className="max-w-6xl mx-auto">
        <h2 className="text-3xl font-bold mb-12 text-center">Work</h2>
        {{projects.length === 0 && <p className="text-center">Projects coming soon.</p>}}
        <div className="grid gap-8 md:grid-cols-2">
          {{projects.map((project) => (
            <article key={{project.title}} className="rounded-xl p-6" style={{{{ background: 'var(--color-surface)' }}}}>
              <h3 className="text-xl font-semibold mb-2">{{project.title}}</h3>
              <p className="opacity-80">{{project.description}}</p>
            </article>
          ))}}
        </div>
      </div>
    </section>
  );
}}
"""

    contact_tsx = f"""export default function Contact() {{
  return (
    <section id="contact" className="py-24 px-6">
      <div className="max-w-4xl mx-auto text-center">
        <h2 className="text-3xl font-bold mb-8">Get in Touch</h2>
        <a href={_js("mailto:" + email)} className="inline-block px-8 py-3 rounded-lg" style={{{{ background: 'var(--color-primary)' }}}}>
          Contact Me
        </a>
      </div>
    </section>
  );
}}
"""

    return [
        FileUpdate(path="/src/main.tsx", content=main_tsx),
        FileUpdate(path="/src/App.tsx", content=app_tsx),
        FileUpdate(path="/src/index.css", content=index_css),
        FileUpdate(path="/src/components/Hero.tsx", content=hero_tsx),
        FileUpdate(path="/src/components/About.tsx", content=about_tsx),
        FileUpdate(path="/src/components/Projects.tsx", content=projects_tsx),
        FileUpdate(path="/src/components/Contact.tsx", content=contact_tsx),
    ]


# =============================================================================
# GENERATION
# =============================================================================

def generate_site(
    client: ModelClient,
    brief: Brief,
    moodboard: Moodboard,
    specs: Optional[Sequence[SpecDocument]] = None,
) -> BuildResult:
    """
    Generate a complete site from a brief.

    Args:
        client: Model capability (the builder model)
        brief: Who the site is for
        moodboard: Visual direction
        specs: Optional planning documents

    Returns:
        BuildResult; `success` is False when the fallback site was used
    """
    started = time.perf_counter()
    steps = [ThoughtStep.create("thinking", "Analyzing brief and preparing generation...", prefix="build", duration=0)]

    try:
        generation_started = time.perf_counter()
        reply = client.complete(
            [ChatTurn(role="user", content=build_user_message(brief, moodboard, specs or []))],
            _system_prompt(),
        )
        steps.append(ThoughtStep.create(
            "generating",
            "Generating complete React site code...",
            prefix="build",
            duration=round(time.perf_counter() - generation_started, 2),
        ))

        files = parse_reply(reply).updates
        if not files:
            raise ValueError("Model reply contained no files")

        errors = detect_errors(files)
        steps.append(ThoughtStep.create(
            "validating",
            "Analyzing for errors...",
            prefix="build",
            details=[f"{error.file}: {error.message}" for error in errors],
        ))

        fix_attempts = 0
        fixable = [error for error in errors if error.fixable]
        if fixable:
            fix_attempts = 1
            steps.append(ThoughtStep.create(
                "fixing",
                f"Auto-fixing {len(fixable)} issues...",
                prefix="build",
                details=[error.message for error in fixable],
            ))
            files = auto_fix_errors(files, errors)
            errors = detect_errors(files)

    except Exception as e:
        logger.error("site_generation_failed", brief_id=brief.id, error=str(e), exc_info=True)
        steps.append(ThoughtStep.create("error", str(e) or "Unknown error", prefix="build"))
        return BuildResult(
            files=create_fallback_site(brief, moodboard),
            thought_steps=steps,
            success=False,
        )

    steps.append(ThoughtStep.create(
        "complete",
        f"Generated {len(files)} files",
        prefix="build",
        duration=round(time.perf_counter() - started, 2),
        details=[f.path for f in files],
    ))
    logger.info("site_generated", brief_id=brief.id, files=len(files), warnings=sum(1 for e in errors if not e.fixable))

    return BuildResult(
        files=files,
        thought_steps=steps,
        validation_errors=errors,
        fix_attempts=fix_attempts,
    )
