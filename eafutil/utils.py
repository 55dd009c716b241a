"""Utility functions for eafutil."""

import os
import logging
from typing import List, Optional
from urllib.parse import unquote, urlparse

from .exceptions import FileSystemError

logger = logging.getLogger(__name__)

def ensure_dir_exists(dir_path: str) -> None:
    """
    Ensures that a directory exists. Creates it if it doesn't.

    Args:
        dir_path: The path to the directory.

    Raises:
        FileSystemError: If the directory cannot be created due to permissions
                         or if the path exists but is not a directory.
    """
    if not dir_path:
        raise ValueError("Directory path cannot be empty.")
    try:
        if not os.path.exists(dir_path):
            os.makedirs(dir_path)
            logger.info(f"Created directory: {dir_path}")
        elif not os.path.isdir(dir_path):
            raise FileSystemError(f"Path exists but is not a directory: {dir_path}")
    except OSError as e:
        logger.error(f"Error creating or accessing directory {dir_path}: {e}", exc_info=True)
        raise FileSystemError(f"Could not create or access directory {dir_path}: {e}") from e

def ensure_writable(path: str, overwrite: bool) -> None:
    """Raises FileSystemError if `path` exists and may not be overwritten."""
    if os.path.exists(path) and not overwrite:
        raise FileSystemError(f"Output file already exists (use --overwrite to replace it): {path}")

def require_file(path: str) -> None:
    """Raises FileNotFoundError unless `path` is an existing file."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")
    if not os.path.isfile(path):
        raise FileSystemError(f"Not a file: {path}")

def require_dir(path: str) -> None:
    """Raises FileNotFoundError unless `path` is an existing directory."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Directory not found: {path}")
    if not os.path.isdir(path):
        raise FileSystemError(f"Not a directory: {path}")

def is_hidden(path: str) -> bool:
    """True for dot-files such as macOS '._' resource forks."""
    return os.path.basename(path).startswith(".")

def find_files(root_dir: str, extension: str) -> List[str]:
    """
    Recursively collects files with the given extension below `root_dir`.

    Hidden files and directories are skipped. Matching is case-insensitive
    and the result is sorted for reproducible output.

    Args:
        root_dir: Directory to walk.
        extension: Extension including the dot, e.g. ".eaf".

    Returns:
        Sorted list of file paths.
    """
    extension = extension.lower()
    found = []
    for dirpath, dirnames, filenames in os.walk(root_dir):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        for filename in filenames:
            if is_hidden(filename):
                continue
            if os.path.splitext(filename)[1].lower() == extension:
                found.append(os.path.join(dirpath, filename))
    return sorted(found)

def append_to_stem(path: str, suffix: str, extension: Optional[str] = None) -> str:
    """
    Returns `path` with `_suffix` appended to the file stem.

    >>> append_to_stem("dir/file.eaf", "ADDMEDIA")
    'dir/file_ADDMEDIA.eaf'
    """
    stem, ext = os.path.splitext(path)
    if extension is not None:
        ext = extension
    return f"{stem}_{suffix}{ext}"

def seconds_to_ms(seconds: float) -> int:
    """Converts seconds to milliseconds, rounding half away from zero."""
    value = seconds * 1000
    if value < 0:
        return -int(-value + 0.5)
    return int(value + 0.5)

def format_ms(milliseconds: Optional[int]) -> str:
    """
    Formats milliseconds as HH:MM:SS.fff.

    Args:
        milliseconds: Time in milliseconds. None formats as an empty string.

    Returns:
        Formatted time string.
    """
    if milliseconds is None:
        return ""
    if milliseconds < 0:
        milliseconds = 0
    hrs = milliseconds // 3600000
    milliseconds %= 3600000
    mins = milliseconds // 60000
    milliseconds %= 60000
    secs = milliseconds // 1000
    milliseconds %= 1000
    return f"{hrs:02d}:{mins:02d}:{secs:02d}.{milliseconds:03d}"

def parse_timestamp(value: str) -> int:
    """
    Parses a timestamp into milliseconds.

    Accepts integer milliseconds ("1500"), "HH:MM:SS" and "HH:MM:SS.fff".

    Raises:
        ValueError: If the value matches none of the accepted forms.
    """
    value = value.strip()
    if value.isdigit():
        return int(value)
    parts = value.split(":")
    if len(parts) != 3:
        raise ValueError(f"Invalid timestamp: '{value}'")
    hours, minutes, seconds = parts
    if "." in seconds:
        whole, fraction = seconds.split(".", 1)
    else:
        whole, fraction = seconds, ""
    for part in (hours, minutes, whole):
        if not part.isdigit():
            raise ValueError(f"Invalid timestamp: '{value}'")
    if fraction and not fraction.isdigit():
        raise ValueError(f"Invalid timestamp: '{value}'")
    # '.5' means 500 ms, extra precision is truncated
    millis = int(fraction[:3].ljust(3, "0")) if fraction else 0
    return ((int(hours) * 60 + int(minutes)) * 60 + int(whole)) * 1000 + millis

def path_to_file_url(path: str) -> str:
    """Converts a filesystem path to the 'file://' form ELAN writes in MEDIA_URL."""
    absolute = os.path.abspath(path).replace(os.sep, "/")
    if not absolute.startswith("/"):
        absolute = "/" + absolute # Windows drive letters
    return f"file://{absolute}"

def url_to_path(url: str) -> str:
    """
    Converts an ELAN media URL to a filesystem path.

    Handles 'file:///abs/path', 'file:./relative' and plain paths.
    """
    if url.startswith("file:"):
        parsed = urlparse(url)
        path = unquote(parsed.path)
        if parsed.netloc:
            path = f"//{parsed.netloc}{path}" # UNC share
        elif not url.startswith("file:/"):
            path = unquote(url[len("file:"):])
        if len(path) > 2 and path[0] == "/" and path[2] == ":":
            path = path[1:] # file:///C:/...
        return path
    return url
