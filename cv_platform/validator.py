"""
Static Validator - pattern checks over the files touched by one turn.

Responsibilities:
- Scan candidate FileUpdates for a fixed catalogue of defects
- Classify each finding as fixable (repair engine) or report-only
- Expose the per-rule finders so repairs transform exactly what was detected

The checks are textual and local to one file. Nothing here executes code or
looks at files outside the update list.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from cv_platform.sandbox.libraries import get_registry
from cv_platform.schemas import FileUpdate, ValidationError


logger = structlog.get_logger(__name__)


# =============================================================================
# RULE CODES
# =============================================================================

RULE_NEXT_IMPORT = "next-import"
RULE_INLINE_STYLE = "inline-style-tag"
RULE_NONDETERMINISTIC = "nondeterministic-render"
RULE_BROWSER_GLOBAL = "unguarded-browser-global"
RULE_DEAD_INTERACTIVE = "dead-interactive"
RULE_UNRESOLVED_SYMBOL = "unresolved-symbol"
RULE_SECTION_ID = "missing-section-id"
RULE_CLIENT_DIRECTIVE = "missing-client-directive"

SCRIPT_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")
COMPONENT_EXTENSIONS = (".tsx", ".jsx")
BROWSER_GLOBALS = ("window", "document", "localStorage", "sessionStorage")

# Stems that are wiring rather than page sections
NON_SECTION_STEMS = {"app", "main", "index", "layout", "page", "root"}

# Names the preview runtime always provides
ALWAYS_BOUND = {"React"}


# =============================================================================
# SCANNING HELPERS
# =============================================================================

_CLOSERS = {"(": ")", "{": "}", "[": "]"}


def _opens_quote(text: str, i: int) -> bool:
    """Whether text[i] starts a string literal (apostrophes inside words do not)."""
    ch = text[i]
    if ch not in "'\"`":
        return False
    if ch == "'" and i > 0 and text[i - 1].isalnum():
        return False
    return True


def _closes_quote(ch: str, quote: str) -> bool:
    return ch == quote or (ch == "\n" and quote != "`")


def mask_comments(content: str) -> str:
    """
    Blank out // and /* */ comments, keeping every offset and newline intact.

    Args:
        content: Source text

    Returns:
        Text of the same length with comment characters replaced by spaces
    """
    out = list(content)
    n = len(content)
    quote: Optional[str] = None
    i = 0
    while i < n:
        ch = content[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if _closes_quote(ch, quote):
                quote = None
        elif _opens_quote(content, i):
            quote = ch
        elif content.startswith("//", i) and content[i - 1:i] != ":":
            # `://` is a URL in JSX text, not a comment
            end = content.find("\n", i)
            end = n if end == -1 else end
            for j in range(i, end):
                out[j] = " "
            i = end
            continue
        elif content.startswith("/*", i):
            end = content.find("*/", i + 2)
            end = n if end == -1 else end + 2
            for j in range(i, end):
                if out[j] != "\n":
                    out[j] = " "
            i = end
            continue
        i += 1
    return "".join(out)


def find_matching(text: str, open_index: int) -> int:
    """Index of the bracket closing text[open_index], or -1 when unbalanced."""
    opener = text[open_index]
    closer = _CLOSERS[opener]
    depth = 0
    quote: Optional[str] = None
    i = open_index
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if _closes_quote(ch, quote):
                quote = None
        elif _opens_quote(text, i):
            quote = ch
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def scan_tag_end(text: str, start: int) -> int:
    """Index of the '>' closing the JSX opening tag at start, or -1."""
    depth = 0
    quote: Optional[str] = None
    i = start + 1
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in "\"'" and depth == 0:
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        elif ch == ">" and depth == 0:
            return i
        i += 1
    return -1


def line_number(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def is_component_file(path: str) -> bool:
    return path.endswith(COMPONENT_EXTENSIONS)


def is_entry_file(content: str) -> bool:
    return "createRoot(" in content or "ReactDOM.render(" in content


JSX_OPEN_RE = re.compile(r"(?:\breturn|=>)\s*\(")


def jsx_spans(text: str) -> List[Tuple[int, int]]:
    """(start, end) offsets of parenthesised JSX blocks after `return (` or `=> (`."""
    spans = []
    for match in JSX_OPEN_RE.finditer(text):
        open_index = match.end() - 1
        close = find_matching(text, open_index)
        if close == -1:
            continue
        if text[open_index + 1:close].lstrip().startswith("<"):
            spans.append((open_index + 1, close))
    return spans


def _innermost_open_brace(text: str, low: int, pos: int) -> int:
    depth = 0
    for i in range(pos - 1, low - 1, -1):
        ch = text[i]
        if ch == "}":
            depth += 1
        elif ch == "{":
            if depth == 0:
                return i
            depth -= 1
    return -1


# =============================================================================
# IMPORT HELPERS
# =============================================================================

IMPORT_STMT_RE = re.compile(r"^[ \t]*import\b[^;]*?['\"][^'\"\n]+['\"][ \t]*;?[ \t]*$", re.MULTILINE)
IMPORT_FROM_RE = re.compile(r"^[ \t]*import\s+([^;'\"]*?)\s+from\s*['\"]([^'\"]+)['\"]", re.MULTILINE)
CLIENT_DIRECTIVE_RE = re.compile(r"""^\s*(['"])use client\1\s*;?\s*$""")


def import_bindings(clause: str) -> List[str]:
    """Local names bound by an import clause such as `React, { useState as s }`."""
    names: List[str] = []
    clause = re.sub(r"^\s*type\s+", "", clause)
    braces = re.search(r"\{([^}]*)\}", clause)
    if braces:
        for part in braces.group(1).split(","):
            part = re.sub(r"^\s*type\s+", "", part).strip()
            if part:
                names.append(re.split(r"\s+as\s+", part)[-1].strip())
        clause = clause[:braces.start()] + clause[braces.end():]
    namespace = re.search(r"\*\s*as\s+([\w$]+)", clause)
    if namespace:
        names.append(namespace.group(1))
        clause = clause.replace(namespace.group(0), "")
    for part in clause.split(","):
        part = part.strip()
        if re.fullmatch(r"[\w$]+", part):
            names.append(part)
    return names


def imported_modules(content: str) -> Dict[str, List[str]]:
    """Module specifier -> names imported from it."""
    modules: Dict[str, List[str]] = {}
    for match in IMPORT_FROM_RE.finditer(mask_comments(content)):
        modules.setdefault(match.group(2), []).extend(import_bindings(match.group(1)))
    return modules


def ensure_named_imports(content: str, module: str, names: Sequence[str]) -> str:
    """
    Make sure `names` are imported from `module`.

    Extends an existing `import { ... } from 'module'` when there is one,
    otherwise adds a new import after the last import statement (or after
    the client directive, or at the top of the file).
    """
    existing = imported_modules(content).get(module, [])
    missing = [name for name in dict.fromkeys(names) if name not in existing]
    if not missing:
        return content

    named_re = re.compile(
        r"(import\s+(?:[\w$]+\s*,\s*)?\{)([^}]*)(\}\s*from\s*['\"]" + re.escape(module) + r"['\"])"
    )
    match = named_re.search(content)
    if match:
        inner = match.group(2).rstrip().rstrip(",")
        separator = ", " if inner.strip() else " "
        new_inner = f"{inner}{separator}{', '.join(missing)} "
        return content[:match.start(2)] + new_inner + content[match.end(2):]

    statement = f"import {{ {', '.join(missing)} }} from '{module}';"
    imports = list(IMPORT_STMT_RE.finditer(content))
    if imports:
        end = imports[-1].end()
        return content[:end] + "\n" + statement + content[end:]

    lines = content.split("\n")
    for index, line in enumerate(lines):
        if line.strip():
            if CLIENT_DIRECTIVE_RE.match(line):
                lines.insert(index + 1, statement)
                return "\n".join(lines)
            break
    return statement + "\n" + content


# =============================================================================
# RULE FINDERS
# =============================================================================

NEXT_IMPORT_RE = re.compile(r"^[ \t]*import\s+([^;'\"]*?)\s+from\s*['\"](next(?:/[\w-]+)*)['\"][ \t]*;?[ \t]*\n?", re.MULTILINE)
STYLE_TAG_RE = re.compile(r"<style\b[^>]*>(.*?)</style>", re.DOTALL)
NONDETERMINISTIC_RE = re.compile(r"\bMath\.random\s*\(\s*\)|\bDate\.now\s*\(\s*\)|\bnew\s+Date\s*\(")
BROWSER_GLOBAL_RE = re.compile(r"(?<![\w$.])(window|document|localStorage|sessionStorage)\s*\.(?=[A-Za-z_$])")
DEFERRED_CALL_RE = re.compile(
    r"\b(?:useEffect|useLayoutEffect|useCallback|addEventListener|setTimeout|setInterval|requestAnimationFrame)\s*\("
)
HANDLER_ATTR_RE = re.compile(r"\bon[A-Z]\w*\s*=\s*\{")
HANDLER_FUNCTION_RE = re.compile(r"\bfunction\s+(?:handle|on)[A-Z]\w*\s*\([^)]*\)\s*(?::\s*[\w<>\[\]]+\s*)?\{")
HANDLER_CONST_RE = re.compile(
    r"\b(?:const|let)\s+(?:handle|on)[A-Z]\w*\s*=\s*(?:async\s*)?(?:\([^)]*\)|[\w$]+)\s*=>\s*"
)
INTERACTIVITY_RE = re.compile(r"\buse[A-Z]\w*\s*\(|\bon[A-Z]\w*\s*=\s*\{|<motion\.|\bAnimatePresence\b")
INTERACTIVE_TAG_RE = re.compile(r"<(button|a|motion\.button|motion\.a)(?=[\s>/])")
CLICK_HANDLER_RE = re.compile(r"\bon(?:Click|Tap|PointerDown|MouseDown)\s*=")
HREF_RE = re.compile(
    r"""\bhref\s*=\s*(?:"([^"]*)"|'([^']*)'|\{\s*(?:"([^"]*)"|'([^']*)'|`([^`$]*)`)\s*\}|(\{))"""
)
JSX_ROOT_RE = re.compile(r"(?<![\w$.])<([A-Za-z_$][\w$]*)((?:\.[\w$]+)*)(?=[\s/>])")
DECLARATION_RE = re.compile(r"\b(?:function\*?|class|const|let|var|type|interface|enum)\s+([A-Za-z_$][\w$]*)")
BINDING_RE = re.compile(r"(?:[{,(\[]|:)\s*([A-Z][\w$]*)\s*(?=[,})\]=])")
SECTION_TAG_RE = re.compile(r"<(?:motion\.)?section(?=[\s>/])")

# Characters that put a `{` in an attribute or nested expression rather than a child slot
_NON_CHILD_PRECEDERS = set("=({[,:?&|!")


@dataclass(frozen=True)
class RenderValueUse:
    """A nondeterministic expression inside rendered markup."""
    start: int
    container_start: int
    container_end: int
    in_attribute: bool


@dataclass(frozen=True)
class UnresolvedSymbol:
    name: str
    start: int
    module: Optional[str]


@dataclass(frozen=True)
class DeadElement:
    tag: str
    start: int
    reason: str


def find_next_imports(content: str) -> List[re.Match]:
    return list(NEXT_IMPORT_RE.finditer(content))


def find_style_tags(content: str) -> List[re.Match]:
    return list(STYLE_TAG_RE.finditer(content))


def find_nondeterministic_uses(content: str) -> List[RenderValueUse]:
    """Time and random expressions evaluated directly while rendering markup."""
    masked = mask_comments(content)
    spans = jsx_spans(masked)
    uses: List[RenderValueUse] = []
    seen: Set[int] = set()

    for match in NONDETERMINISTIC_RE.finditer(masked):
        containing = [span for span in spans if span[0] <= match.start() < span[1]]
        if not containing:
            continue
        low = max(span[0] for span in containing)
        brace = _innermost_open_brace(masked, low, match.start())
        if brace == -1 or brace in seen:
            continue
        between = masked[brace + 1:match.start()]
        if "=>" in between or re.search(r"\bfunction\b", between):
            continue
        close = find_matching(masked, brace)
        if close == -1:
            continue
        seen.add(brace)
        preceding = masked[:brace].rstrip()[-1:]
        uses.append(RenderValueUse(match.start(), brace, close, preceding in _NON_CHILD_PRECEDERS))

    return uses


def _deferred_spans(masked: str) -> List[Tuple[int, int]]:
    spans = []
    for pattern in (DEFERRED_CALL_RE, HANDLER_ATTR_RE, HANDLER_FUNCTION_RE):
        for match in pattern.finditer(masked):
            close = find_matching(masked, match.end() - 1)
            if close != -1:
                spans.append((match.end() - 1, close))
    for match in HANDLER_CONST_RE.finditer(masked):
        body = match.end()
        if masked[body:body + 1] == "{":
            close = find_matching(masked, body)
        else:
            close = masked.find("\n", body)
        spans.append((body, len(masked) if close == -1 else close))
    return spans


# How a guarded global is rewritten
GUARD_STATEMENT = "statement"
GUARD_BLOCK = "block"
GUARD_EXPRESSION = "expression"

MEMBER_STEP_RE = re.compile(r"\s*(?:\?\.|\.)\s*[A-Za-z_$][\w$]*|\s*!(?!=)")
ASSIGNMENT_RE = re.compile(r"\s*(?:\+\+|--|(?:\*\*|<<|>>>|>>|&&|\|\||\?\?|[-+*/%&|^])?=(?![=>]))")
_CONTINUES_AFTER = set("=+-*/%&|^?:,.(")


@dataclass(frozen=True)
class GlobalAccess:
    """A browser global read or written during render."""
    start: int
    name: str
    guard: Optional[str]  # GUARD_* rewrite, None when no local rewrite keeps the code valid
    end: int  # end of the enclosing statement, used by GUARD_BLOCK


def _member_chain_end(masked: str, index: int) -> int:
    """End of `.a.b(x)[y]!` style member/call chains starting at index."""
    while True:
        step = MEMBER_STEP_RE.match(masked, index)
        if step:
            index = step.end()
            continue
        j = index
        while j < len(masked) and masked[j] in " \t":
            j += 1
        if j < len(masked) and masked[j] in "([":
            close = find_matching(masked, j)
            if close == -1:
                return j
            index = close + 1
            continue
        return index


def _statement_end(masked: str, start: int) -> int:
    """Offset just past the statement containing start (its `;` when present)."""
    n = len(masked)
    i = start
    quote: Optional[str] = None
    while i < n:
        ch = masked[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if _closes_quote(ch, quote):
                quote = None
        elif _opens_quote(masked, i):
            quote = ch
        elif ch in _CLOSERS:
            close = find_matching(masked, i)
            if close == -1:
                return n
            i = close
        elif ch == ";":
            return i + 1
        elif ch in ")]}":
            return i
        elif ch == "\n":
            before = masked[start:i].rstrip()[-1:]
            after = masked[i:].lstrip()[:1]
            if before not in _CONTINUES_AFTER and after not in (".", "?"):
                return i
        i += 1
    return n


def _global_guard(masked: str, start: int, name: str, in_markup: bool) -> Tuple[Optional[str], int]:
    chain_end = _member_chain_end(masked, start + len(name))
    before = masked[:start].rstrip()
    assigned = bool(ASSIGNMENT_RE.match(masked, chain_end)) or before.endswith(("++", "--"))

    if not in_markup:
        line_start = masked.rfind("\n", 0, start) + 1
        prev_line = masked[:line_start].rstrip()
        if not masked[line_start:start].strip() and (not prev_line or prev_line[-1] in ";{}"):
            return GUARD_STATEMENT, chain_end
        if before.endswith((")", ";")) or re.search(r"\belse$", before):
            return GUARD_BLOCK, _statement_end(masked, start)
    # Optional chaining cannot be assigned to
    if assigned:
        return None, chain_end
    return GUARD_EXPRESSION, chain_end


def find_unguarded_globals(content: str) -> List[GlobalAccess]:
    """Browser globals used during render without a typeof guard."""
    if is_entry_file(content):
        return []
    masked = mask_comments(content)
    deferred = _deferred_spans(masked)
    markup = jsx_spans(masked)
    found = []
    for match in BROWSER_GLOBAL_RE.finditer(masked):
        start = match.start()
        if any(low <= start <= high for low, high in deferred):
            continue
        line_start = masked.rfind("\n", 0, start) + 1
        line_end = masked.find("\n", start)
        line = masked[line_start:len(masked) if line_end == -1 else line_end]
        if "typeof " in line:
            continue
        name = match.group(1)
        in_markup = any(low <= start < high for low, high in markup)
        guard, end = _global_guard(masked, start, name, in_markup)
        found.append(GlobalAccess(start, name, guard, end))
    return found


def has_client_directive(content: str) -> bool:
    """Whether the first meaningful line is the 'use client' directive."""
    for line in mask_comments(content).split("\n"):
        if line.strip():
            return bool(CLIENT_DIRECTIVE_RE.match(line))
    return False


def needs_client_directive(content: str) -> bool:
    return bool(INTERACTIVITY_RE.search(mask_comments(content)))


def find_dead_interactive(content: str) -> List[DeadElement]:
    masked = mask_comments(content)
    dead = []
    for match in INTERACTIVE_TAG_RE.finditer(masked):
        end = scan_tag_end(masked, match.start())
        attributes = masked[match.end():len(masked) if end == -1 else end]
        if CLICK_HANDLER_RE.search(attributes) or "{..." in attributes:
            continue
        tag = match.group(1)
        if tag.endswith("button"):
            if re.search(r"""\btype\s*=\s*["']submit["']""", attributes) or re.search(r"\bdisabled\b", attributes):
                continue
            dead.append(DeadElement(tag, match.start(), "has no onClick handler"))
            continue
        href = HREF_RE.search(attributes)
        if href is None:
            dead.append(DeadElement(tag, match.start(), "has no href and no onClick handler"))
            continue
        if href.group(6):
            continue
        target = next(group for group in href.groups()[:5] if group is not None)
        if target.strip() in ("", "#"):
            dead.append(DeadElement(tag, match.start(), f'has a placeholder href "{target}" and no onClick handler'))
    return dead


def declared_names(content: str) -> Set[str]:
    masked = mask_comments(content)
    names: Set[str] = set()
    for bound in imported_modules(content).values():
        names.update(bound)
    names.update(DECLARATION_RE.findall(masked))
    names.update(BINDING_RE.findall(masked))
    return names


def find_unresolved_symbols(content: str) -> List[UnresolvedSymbol]:
    """JSX roots that are neither imported nor declared in the file."""
    masked = mask_comments(content)
    declared = declared_names(content) | ALWAYS_BOUND
    prefer = list(imported_modules(content))
    registry = get_registry()

    symbols: Dict[str, UnresolvedSymbol] = {}
    for match in JSX_ROOT_RE.finditer(masked):
        root, member = match.group(1), match.group(2)
        if not (root[0].isupper() or member):
            continue
        if root in declared or root in symbols:
            continue
        symbols[root] = UnresolvedSymbol(root, match.start(), registry.module_for_export(root, prefer=prefer))
    return list(symbols.values())


def section_id_for(path: str) -> str:
    """Anchor id derived from a component file name ("HeroSection.tsx" -> "hero")."""
    stem = PurePosixPath(path).stem.lower()
    if stem.endswith("section") and len(stem) > len("section"):
        stem = stem[: -len("section")]
    return re.sub(r"[^a-z0-9]+", "-", stem).strip("-") or "section"


def find_section_missing_id(path: str, content: str) -> Optional[int]:
    """Offset just after the first section tag name when that tag has no id."""
    if PurePosixPath(path).stem.lower() in NON_SECTION_STEMS:
        return None
    masked = mask_comments(content)
    match = SECTION_TAG_RE.search(masked)
    if not match:
        return None
    end = scan_tag_end(masked, match.start())
    attributes = masked[match.end():len(masked) if end == -1 else end]
    if re.search(r"(?<![\w-])id\s*=", attributes):
        return None
    return match.end()


# =============================================================================
# VALIDATOR
# =============================================================================

def _check_file(path: str, content: str) -> List[ValidationError]:
    errors: List[ValidationError] = []

    def report(rule: str, message: str, fixable: bool, index: Optional[int] = None) -> None:
        line = line_number(content, index) if index is not None else None
        errors.append(ValidationError(file=path, message=message, fixable=fixable, rule=rule, line=line))

    for match in find_next_imports(content):
        report(
            RULE_NEXT_IMPORT,
            f"Import from '{match.group(2)}' is not available in the Vite runtime",
            True,
            match.start(),
        )

    if not is_component_file(path):
        return errors

    styles = find_style_tags(content)
    if styles:
        report(RULE_INLINE_STYLE, "Inline <style> tag in component; move the CSS to a stylesheet", True, styles[0].start())

    uses = find_nondeterministic_uses(content)
    in_children = [use for use in uses if not use.in_attribute]
    in_attributes = [use for use in uses if use.in_attribute]
    if in_children:
        report(
            RULE_NONDETERMINISTIC,
            "Time or random value rendered directly; wrap it so it is only computed on the client",
            True,
            in_children[0].start,
        )
    if in_attributes:
        report(
            RULE_NONDETERMINISTIC,
            "Time or random value computed inside a JSX attribute during render; move it into state or an effect",
            False,
            in_attributes[0].start,
        )

    globals_used = find_unguarded_globals(content)
    guardable = [access for access in globals_used if access.guard is not None]
    assigned = [access for access in globals_used if access.guard is None]
    if guardable:
        names = ", ".join(sorted({access.name for access in guardable}))
        report(
            RULE_BROWSER_GLOBAL,
            f"Browser global ({names}) accessed during render without a typeof guard",
            True,
            guardable[0].start,
        )
    if assigned:
        names = ", ".join(sorted({access.name for access in assigned}))
        report(
            RULE_BROWSER_GLOBAL,
            f"Browser global ({names}) assigned inside an expression during render; move the write into an effect",
            False,
            assigned[0].start,
        )

    for element in find_dead_interactive(content):
        report(RULE_DEAD_INTERACTIVE, f"<{element.tag}> {element.reason}", False, element.start)

    for symbol in find_unresolved_symbols(content):
        if symbol.module:
            message = f"'{symbol.name}' is used but not imported (available from '{symbol.module}')"
        else:
            message = f"'{symbol.name}' is used but never imported or declared"
        report(RULE_UNRESOLVED_SYMBOL, message, symbol.module is not None, symbol.start)

    section_at = find_section_missing_id(path, content)
    if section_at is not None:
        report(
            RULE_SECTION_ID,
            f'Top-level <section> has no id; expected id="{section_id_for(path)}"',
            True,
            section_at,
        )

    if needs_client_directive(content) and not has_client_directive(content):
        report(RULE_CLIENT_DIRECTIVE, "Uses hooks, event handlers or motion without 'use client' at the top", True, 0)

    return errors


def detect_errors(updates: Iterable[FileUpdate]) -> List[ValidationError]:
    """
    Check the candidate updates of one turn.

    Pure: the result depends only on the given updates.

    Args:
        updates: Files produced this turn

    Returns:
        Findings in update order, then catalogue order within a file
    """
    errors: List[ValidationError] = []
    checked = 0
    for update in updates:
        if not update.path.endswith(SCRIPT_EXTENSIONS):
            continue
        checked += 1
        errors.extend(_check_file(update.path, update.content))

    if errors:
        logger.info(
            "validation_findings",
            files_checked=checked,
            errors=len(errors),
            fixable=sum(1 for error in errors if error.fixable),
            rules=sorted({error.rule for error in errors}),
        )
    return errors


def has_fixable(errors: Iterable[ValidationError]) -> bool:
    return any(error.fixable for error in errors)
