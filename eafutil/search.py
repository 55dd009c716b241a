"""Searches annotation values in one EAF file or a directory tree of them."""

import logging
import os
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern

from tqdm import tqdm

from .eaf_io import read_eaf
from .exceptions import EafParseError, InvalidPatternError
from .models import EafDocument
from .utils import find_files

logger = logging.getLogger(__name__)

@dataclass
class SearchMatch:
    """A matching annotation. `index` is the 1-based position within its tier."""
    index: int
    tier_id: str
    annotation_id: str
    value: str
    ref_id: Optional[str] = None
    parent_value: Optional[str] = None
    parent_tier_id: Optional[str] = None

@dataclass
class FileSearchResult:
    path: str
    matches: List[SearchMatch] = field(default_factory=list)
    error: Optional[str] = None

@dataclass
class DirectorySearchResult:
    files: List[FileSearchResult] = field(default_factory=list)

    @property
    def match_count(self) -> int:
        return sum(len(f.matches) for f in self.files)

    @property
    def files_with_matches(self) -> int:
        return sum(1 for f in self.files if f.matches)

    def errors_by_message(self) -> Dict[str, List[str]]:
        """Groups failed files by error message."""
        grouped: Dict[str, List[str]] = OrderedDict()
        for result in self.files:
            if result.error is not None:
                grouped.setdefault(result.error, []).append(result.path)
        return grouped

def compile_pattern(pattern: Optional[str] = None, regex: Optional[str] = None,
                    ignore_case: bool = False) -> Pattern:
    """
    Compiles the search pattern.

    Args:
        pattern: A literal substring.
        regex: A regular expression. Takes precedence over `pattern`.
        ignore_case: Match case-insensitively.

    Raises:
        InvalidPatternError: If the regular expression does not compile,
                             or neither argument is given.
    """
    if regex is None and pattern is None:
        raise InvalidPatternError("No search pattern given")
    source = regex if regex is not None else re.escape(pattern)
    flags = re.IGNORECASE if ignore_case else 0
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise InvalidPatternError(f"Invalid regular expression '{regex}': {e}") from e

def search_document(doc: EafDocument, matcher: Pattern, context: bool = False) -> List[SearchMatch]:
    """
    Finds annotations whose value matches `matcher`.

    Args:
        doc: The document to search.
        matcher: A compiled pattern from compile_pattern().
        context: Resolve the parent annotation of each match.

    Returns:
        Matches in tier order.
    """
    matches = []
    spans = doc.effective_spans() if context else None
    for tier in doc.tiers:
        for index, annotation in enumerate(tier.annotations, start=1):
            if not matcher.search(annotation.value):
                continue
            match = SearchMatch(index, tier.tier_id, annotation.id, annotation.value, annotation.ref_id)
            if context:
                parent = doc.parent_annotation(tier, annotation, spans)
                if parent is not None:
                    match.parent_value = parent.value
                    match.parent_tier_id = tier.parent_ref
            matches.append(match)
    return matches

def search_file(path: str, matcher: Pattern, context: bool = False) -> FileSearchResult:
    """Searches a single file, recording a parse failure instead of raising it."""
    try:
        doc = read_eaf(path)
    except (EafParseError, OSError) as e:
        logger.warning(f"Skipping {path}: {e}")
        return FileSearchResult(path, error=_error_kind(e, path))
    return FileSearchResult(path, search_document(doc, matcher, context))

def _error_kind(error: Exception, path: str) -> str:
    # Identical failures in different files group together
    message = str(error).replace(path, "<file>")
    return f"{type(error).__name__}: {message}"

def search_directory(root_dir: str, matcher: Pattern, context: bool = False,
                     progress: bool = False) -> DirectorySearchResult:
    """
    Searches every .eaf file below `root_dir`, skipping hidden files.

    Args:
        root_dir: Directory to walk recursively.
        matcher: A compiled pattern from compile_pattern().
        context: Resolve parent annotations.
        progress: Show a tqdm progress bar on stderr.

    Returns:
        Per-file results, including files that failed to parse.
    """
    paths = find_files(root_dir, ".eaf")
    logger.info(f"Searching {len(paths)} EAF files in {root_dir}")
    result = DirectorySearchResult()
    for path in tqdm(paths, desc="Searching", unit="file", disable=not progress, leave=False):
        result.files.append(search_file(path, matcher, context))
    return result

def format_matches(path: str, matches: List[SearchMatch], full_path: bool = False) -> str:
    """Formats the matches in one file."""
    name = path if full_path else os.path.basename(path)
    lines = [f"[{name}] {len(matches)} match(es)"]
    for m in matches:
        ref = f" -> {m.ref_id}" if m.ref_id else ""
        lines.append(f"  {m.index:5}. {m.tier_id:<20} {m.annotation_id:<8}{ref} '{m.value}'")
        if m.parent_value is not None:
            lines.append(f"         [PARENT] {m.parent_tier_id}: '{m.parent_value}'")
    return "\n".join(lines)

def format_directory_result(result: DirectorySearchResult, full_path: bool = False,
                            verbose: bool = False) -> str:
    """Formats a directory search, ending with a summary and grouped parse errors."""
    lines = []
    for file_result in result.files:
        if file_result.matches:
            lines.append(format_matches(file_result.path, file_result.matches, full_path))
        elif verbose:
            name = file_result.path if full_path else os.path.basename(file_result.path)
            status = f"failed: {file_result.error}" if file_result.error else "no matches"
            lines.append(f"[{name}] {status}")
    lines.append(
        f"Done. Found {result.match_count} matches in {result.files_with_matches} files. "
        f"Searched {len(result.files)} files."
    )
    errors = result.errors_by_message()
    if errors:
        lines.append(f"Failed to parse {sum(len(p) for p in errors.values())} file(s):")
        for message, paths in errors.items():
            lines.append(f"  {message} ({len(paths)} file(s))")
            if verbose:
                lines.extend(f"    {p}" for p in paths)
    return "\n".join(lines)
