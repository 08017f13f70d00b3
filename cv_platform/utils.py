"""
Utility functions shared across the editor.
"""

import io
import re
import zipfile
from pathlib import Path
from typing import Dict, Iterable, Mapping

from cv_platform.schemas import FileUpdate, ProjectFileSet


PROMPTS_DIR = Path(__file__).parent / "prompts"


def load_prompt(filename: str) -> str:
    """Load a prompt document from the prompts directory."""
    prompt_path = PROMPTS_DIR / filename
    return prompt_path.read_text(encoding="utf-8")


def normalize_path(path: str) -> str:
    """
    Normalize a file path to the leading-slash form used as ProjectFileSet key.
    
    Args:
        path: Raw path, possibly quoted or with Windows separators
        
    Returns:
        Path such as "/src/components/Hero.tsx"
    """
    normalized = path.strip().strip("`'\"").strip()
    normalized = normalized.replace("\\", "/")
    
    # Collapse duplicate separators and drop leading "./"
    normalized = re.sub(r"/{2,}", "/", normalized)
    while normalized.startswith("./"):
        normalized = normalized[2:]
    
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    
    return normalized


def merge_file_updates(files: Mapping[str, str], updates: Iterable[FileUpdate]) -> ProjectFileSet:
    """
    Return a new file set with updates applied by path (full replacement, last write wins).
    
    The input mapping is never mutated.
    """
    merged: ProjectFileSet = {normalize_path(p): c for p, c in files.items()}
    for update in updates:
        merged[normalize_path(update.path)] = update.content
    return merged


def make_zip_bytes(files: Dict[str, str]) -> bytes:
    """
    Create an in-memory ZIP archive from a dictionary of files.
    
    Args:
        files: Dictionary mapping file paths to file contents
        
    Returns:
        Bytes of the ZIP archive
    """
    buffer = io.BytesIO()
    
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for path, content in files.items():
            # Archive entries are relative
            normalized_path = normalize_path(path).lstrip("/")
            zf.writestr(normalized_path, content)
    
    buffer.seek(0)
    return buffer.getvalue()


# Mapping of file extensions to language names for syntax highlighting
EXTENSION_LANGUAGE_MAP = {
    ".js": "javascript",
    ".jsx": "jsx",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".scss": "scss",
    ".json": "json",
    ".md": "markdown",
    ".svg": "xml",
    ".txt": "text",
}

# Special filename mappings (no extension)
FILENAME_LANGUAGE_MAP = {
    ".gitignore": "text",
    ".env": "text",
    ".env.example": "text",
}


def guess_language_from_filename(path: str) -> str:
    """
    Guess the language from a filename for syntax highlighting.
    
    Args:
        path: File path or filename
        
    Returns:
        Language name for syntax highlighting, defaults to "text"
    """
    filename = Path(path).name
    
    if filename in FILENAME_LANGUAGE_MAP:
        return FILENAME_LANGUAGE_MAP[filename]
    
    suffix = Path(path).suffix.lower()
    if suffix in EXTENSION_LANGUAGE_MAP:
        return EXTENSION_LANGUAGE_MAP[suffix]
    
    return "text"


def safe_project_name(name: str) -> str:
    """
    Generate a safe filename from a person's name or a free-form title.
    
    Args:
        name: Free-form text
        
    Returns:
        A safe string for use as a project/filename
    """
    # Take first 50 characters
    name = name[:50].strip()
    
    # Replace whitespace with underscores
    name = re.sub(r'\s+', '_', name)
    
    # Remove non-alphanumeric characters except underscores and hyphens
    name = re.sub(r'[^\w\-]', '', name)
    
    # Remove leading/trailing underscores
    name = name.strip('_')
    
    # Default if empty
    if not name:
        name = "portfolio_site"
    
    return name.lower()
