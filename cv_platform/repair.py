"""
Auto-Repair Engine - deterministic rewrites for fixable validation findings.

Every fixer reuses the validator's finder for its rule, so a repair touches
exactly the text that was reported. A fixer whose anchor is gone leaves the
file as it is. One pass per turn; callers re-validate for reporting only.
"""

import re
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Sequence, Set, Tuple

import structlog

from cv_platform.schemas import FileUpdate, ValidationError
from cv_platform.validator import (
    RULE_BROWSER_GLOBAL,
    RULE_CLIENT_DIRECTIVE,
    RULE_INLINE_STYLE,
    RULE_NEXT_IMPORT,
    RULE_NONDETERMINISTIC,
    RULE_SECTION_ID,
    RULE_UNRESOLVED_SYMBOL,
    CLIENT_DIRECTIVE_RE,
    GUARD_BLOCK,
    GUARD_EXPRESSION,
    GUARD_STATEMENT,
    declared_names,
    ensure_named_imports,
    find_next_imports,
    find_nondeterministic_uses,
    find_section_missing_id,
    find_style_tags,
    find_unguarded_globals,
    find_unresolved_symbols,
    has_client_directive,
    import_bindings,
    needs_client_directive,
    section_id_for,
)


logger = structlog.get_logger(__name__)

CLIENT_DIRECTIVE = "'use client';"

# Preferred targets when inline CSS is moved out of a component
STYLESHEET_PREFERENCE = ("index.css", "globals.css", "global.css", "app.css")

NEXT_ELEMENT_REPLACEMENTS = {"next/image": "img", "next/link": "a"}

CLIENT_ONLY_TSX = """
function ClientOnly({ render }: { render: () => any }) {
  const [mounted, setMounted] = useState(false);
  useEffect(() => setMounted(true), []);
  return mounted ? <>{render()}</> : null;
}
"""

CLIENT_ONLY_JSX = """
function ClientOnly({ render }) {
  const [mounted, setMounted] = useState(false);
  useEffect(() => setMounted(true), []);
  return mounted ? <>{render()}</> : null;
}
"""


# =============================================================================
# FIXERS
# =============================================================================

def fix_next_imports(content: str) -> str:
    """Drop `next/*` imports; swap next/image and next/link elements for plain tags."""
    for match in reversed(find_next_imports(content)):
        module = match.group(2)
        content = content[:match.start()] + content[match.end():]
        tag = NEXT_ELEMENT_REPLACEMENTS.get(module)
        if not tag:
            continue
        for name in import_bindings(match.group(1)):
            content = re.sub(rf"<{re.escape(name)}(?=[\s/>])", f"<{tag}", content)
            content = content.replace(f"</{name}>", f"</{tag}>")
    return content


def _remove_span(content: str, start: int, end: int) -> str:
    """Remove content[start:end], taking its line with it when nothing else is on it."""
    line_start = content.rfind("\n", 0, start) + 1
    line_end = content.find("\n", end)
    line_end = len(content) if line_end == -1 else line_end
    if not content[line_start:start].strip() and not content[end:line_end].strip():
        return content[:line_start] + content[line_end + 1:]
    return content[:start] + content[end:]


def _style_body(raw: str) -> str:
    body = raw.strip()
    # <style jsx>{`...`}</style>
    if body.startswith("{") and body.endswith("}"):
        body = body[1:-1].strip()
    if body.startswith("`") and body.endswith("`"):
        body = body[1:-1]
    return body.strip()


def strip_style_tags(content: str) -> tuple:
    """Remove inline <style> tags. Returns (new content, extracted CSS)."""
    extracted: List[str] = []
    for match in reversed(find_style_tags(content)):
        css = _style_body(match.group(1))
        if css:
            extracted.insert(0, css)
        content = _remove_span(content, match.start(), match.end())
    return content, "\n\n".join(extracted)


def _pick_stylesheet(updates: Sequence[FileUpdate]) -> Optional[int]:
    candidates = [i for i, update in enumerate(updates) if update.path.endswith(".css")]
    for name in STYLESHEET_PREFERENCE:
        for i in candidates:
            if PurePosixPath(updates[i].path).name == name:
                return i
    return candidates[0] if candidates else None


def wrap_nondeterministic(path: str, content: str) -> str:
    """Wrap time/random child expressions in a ClientOnly boundary."""
    uses = [use for use in find_nondeterministic_uses(content) if not use.in_attribute]
    # Outermost containers only; wrapping them defers anything nested
    outer = [
        use for use in uses
        if not any(o is not use and o.container_start < use.container_start <= o.container_end for o in uses)
    ]
    if not outer:
        return content

    for use in sorted(outer, key=lambda u: u.container_start, reverse=True):
        expression = content[use.container_start + 1:use.container_end].strip()
        wrapped = f"<ClientOnly render={{() => {expression}}} />"
        content = content[:use.container_start] + wrapped + content[use.container_end + 1:]

    if "ClientOnly" not in declared_names(content):
        helper = CLIENT_ONLY_TSX if path.endswith(".tsx") else CLIENT_ONLY_JSX
        content = content.rstrip("\n") + "\n" + helper
        content = ensure_named_imports(content, "react", ["useState", "useEffect"])
    return content


def guard_browser_globals(content: str) -> str:
    """Guard render-time browser global access with typeof checks."""
    inserts: List[Tuple[int, str]] = []
    for access in find_unguarded_globals(content):
        guard = f"typeof {access.name} !== 'undefined'"
        if access.guard == GUARD_STATEMENT:
            inserts.append((access.start, f"if ({guard}) "))
        elif access.guard == GUARD_BLOCK:
            inserts.append((access.start, f"{{ if ({guard}) "))
            inserts.append((access.end, " }"))
        elif access.guard == GUARD_EXPRESSION:
            inserts.append((access.start, f"({guard} ? "))
            inserts.append((access.start + len(access.name), " : undefined)?"))
    # Offsets refer to the original text; apply from the end, later inserts first at a shared offset
    for _, (offset, text) in sorted(enumerate(inserts), key=lambda item: (item[1][0], item[0]), reverse=True):
        content = content[:offset] + text + content[offset:]
    return content


def import_known_symbols(content: str) -> str:
    """Synthesize imports for unresolved names that are known library exports."""
    by_module: Dict[str, List[str]] = {}
    for symbol in find_unresolved_symbols(content):
        if symbol.module:
            by_module.setdefault(symbol.module, []).append(symbol.name)
    for module, names in by_module.items():
        content = ensure_named_imports(content, module, names)
    return content


def add_section_id(path: str, content: str) -> str:
    offset = find_section_missing_id(path, content)
    if offset is None:
        return content
    return content[:offset] + f' id="{section_id_for(path)}"' + content[offset:]


def ensure_client_directive(content: str) -> str:
    """Put 'use client' on the first line, removing any misplaced copy."""
    if has_client_directive(content) or not needs_client_directive(content):
        return content
    lines = [line for line in content.split("\n") if not CLIENT_DIRECTIVE_RE.match(line)]
    body = "\n".join(lines).lstrip("\n")
    return f"{CLIENT_DIRECTIVE}\n\n{body}"


# =============================================================================
# ENGINE
# =============================================================================

def _fix_file(path: str, content: str, rules: Set[str]) -> tuple:
    """Apply fixers in a fixed order. Returns (content, extracted CSS)."""
    css = ""
    if RULE_NEXT_IMPORT in rules:
        content = fix_next_imports(content)
    if RULE_INLINE_STYLE in rules:
        content, css = strip_style_tags(content)
    if RULE_NONDETERMINISTIC in rules:
        content = wrap_nondeterministic(path, content)
    if RULE_BROWSER_GLOBAL in rules:
        content = guard_browser_globals(content)
    if RULE_UNRESOLVED_SYMBOL in rules:
        content = import_known_symbols(content)
    if RULE_SECTION_ID in rules:
        content = add_section_id(path, content)
    # Last, since earlier fixes can introduce hooks
    content = ensure_client_directive(content)
    return content, css


def auto_fix_errors(updates: Sequence[FileUpdate], errors: Sequence[ValidationError]) -> List[FileUpdate]:
    """
    Apply deterministic fixes for every fixable error.

    Args:
        updates: Candidate files of this turn
        errors: Findings from detect_errors on those files

    Returns:
        New list with the same paths in the same order; files without fixable
        errors keep their content
    """
    rules_by_file: Dict[str, Set[str]] = {}
    for error in errors:
        if error.fixable:
            rules_by_file.setdefault(error.file, set()).add(error.rule)

    contents = [update.content for update in updates]
    relocated: List[str] = []

    for index, update in enumerate(updates):
        rules = rules_by_file.get(update.path)
        if not rules:
            continue
        fixed, css = _fix_file(update.path, update.content, rules)
        if css:
            relocated.append(f"/* from {update.path} */\n{css}")
        if fixed != update.content:
            logger.info("auto_fix_applied", file=update.path, rules=sorted(rules))
        contents[index] = fixed

    if relocated:
        target = _pick_stylesheet(updates)
        if target is None:
            logger.info("inline_styles_dropped", blocks=len(relocated))
        else:
            contents[target] = contents[target].rstrip("\n") + "\n\n" + "\n\n".join(relocated) + "\n"

    return [FileUpdate(path=update.path, content=content) for update, content in zip(updates, contents)]
