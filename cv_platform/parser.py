"""
File Delta Parser.

Splits a free-form model reply into the conversational part and a list of
full-content file updates. Files are introduced by a sentinel line::

    ### FILE: /src/components/Hero.tsx

and run until the next sentinel line or the end of the reply. There is no
escaping: a file whose content contains a line that itself looks like a
sentinel cannot be represented. The format stays this small on purpose; a
structured-output mode is the alternative if the model supports it reliably.
"""

import re
from typing import Iterable, List, Mapping, Optional, Union

import structlog

from cv_platform.schemas import FileUpdate, ParsedReply
from cv_platform.utils import normalize_path

logger = structlog.get_logger(__name__)

# Case-insensitive and whitespace tolerant; a trailing run of '#' is ignored.
FILE_MARKER_RE = re.compile(
    r"^\s*#{3,}\s*FILE\s*:\s*(?P<path>\S(?:.*?\S)?)\s*(?:#+\s*)?$",
    re.IGNORECASE,
)

_FENCE_OPEN_RE = re.compile(r"^\s*```[\w+-]*\s*$")
_FENCE_CLOSE_RE = re.compile(r"^\s*```\s*$")


def match_file_marker(line: str) -> Optional[str]:
    """Return the normalized path if ``line`` is a file marker, else None."""
    match = FILE_MARKER_RE.match(line)
    if not match:
        return None
    raw_path = match.group("path").strip("*`'\" ")
    if not raw_path:
        return None
    return normalize_path(raw_path)


def _trim_blank_lines(lines: List[str]) -> List[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def _strip_wrapping_fence(lines: List[str]) -> List[str]:
    """Drop a markdown fence that wraps the whole body (models add them despite instructions)."""
    if len(lines) >= 2 and _FENCE_OPEN_RE.match(lines[0]) and _FENCE_CLOSE_RE.match(lines[-1]):
        return _trim_blank_lines(lines[1:-1])
    return lines


def _finish_file(path: str, lines: List[str], strip_fences: bool) -> FileUpdate:
    body = _trim_blank_lines([line.rstrip("\r") for line in lines])
    if strip_fences:
        body = _strip_wrapping_fence(body)
    return FileUpdate(path=path, content="\n".join(body))


def parse_reply(reply: str, strip_fences: bool = True) -> ParsedReply:
    """
    Parse a model reply into prose and file updates.
    
    Args:
        reply: Raw model output
        strip_fences: Remove a markdown fence wrapping an entire file body
        
    Returns:
        ParsedReply; ``updates`` is empty when the reply has no file markers
    """
    natural_lines: List[str] = []
    updates: List[FileUpdate] = []
    current_path: Optional[str] = None
    current_lines: List[str] = []
    
    for line in (reply or "").split("\n"):
        path = match_file_marker(line)
        if path is not None:
            if current_path is not None:
                updates.append(_finish_file(current_path, current_lines, strip_fences))
            current_path = path
            current_lines = []
        elif current_path is not None:
            current_lines.append(line)
        else:
            natural_lines.append(line)
    
    if current_path is not None:
        updates.append(_finish_file(current_path, current_lines, strip_fences))
    
    natural_message = "\n".join(natural_lines).strip()
    logger.debug("Parsed model reply", files=[u.path for u in updates], prose_chars=len(natural_message))
    return ParsedReply(natural_message=natural_message, updates=updates)


def format_file_blocks(files: Union[Mapping[str, str], Iterable[FileUpdate]]) -> str:
    """Serialize files with the same sentinel lines ``parse_reply`` understands."""
    if isinstance(files, Mapping):
        items = [(path, content) for path, content in files.items()]
    else:
        items = [(update.path, update.content) for update in files]
    return "\n\n".join(f"### FILE: {normalize_path(path)}\n{content}" for path, content in items)
