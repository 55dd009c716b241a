"""Adds, removes and rewrites linked media in EAF files."""

import logging
import os
from typing import List, Optional, Tuple

from .eaf_io import read_eaf, write_eaf
from .exceptions import EafUtilError, MediaError
from .models import EafDocument
from .utils import append_to_stem, find_files

logger = logging.getLogger(__name__)

# Output file suffix per action
MEDIA_ACTIONS = {
    "add": "ADDMEDIA",
    "remove": "REMMEDIA",
    "scrub": "SCRMEDIA",
    "filename": "FNMEDIA",
}

def apply_media_action(doc: EafDocument, action: str, media_path: Optional[str] = None,
                       relative_to: Optional[str] = None) -> int:
    """
    Applies a media action to a document in place.

    Args:
        doc: The document.
        action: One of 'add', 'remove', 'scrub', 'filename'.
        media_path: The media file for 'add' and 'remove'.
        relative_to: Directory for the relative media URL when adding.

    Returns:
        Number of media descriptors affected.

    Raises:
        MediaError: If 'add' is given a missing file.
        EafUtilError: For an unknown action or a missing media path.
    """
    if action not in MEDIA_ACTIONS:
        raise EafUtilError(f"Unknown media action '{action}'")
    if action in ("add", "remove") and not media_path:
        raise EafUtilError(f"Media action '{action}' needs a media path")
    if action == "add":
        if not os.path.isfile(media_path):
            raise MediaError(f"Media file not found: {media_path}")
        doc.add_media(media_path, relative_to)
        return 1
    if action == "remove":
        removed = doc.remove_media(media_path)
        if not removed:
            logger.warning(f"No linked media named '{os.path.basename(media_path)}'")
        return removed
    return doc.scrub_media(filename_only=(action == "filename"))

def update_media_file(eaf_path: str, action: str, media_path: Optional[str] = None,
                      overwrite: bool = False) -> Tuple[str, EafDocument]:
    """
    Applies a media action to an EAF file and writes '<stem>_<SUFFIX>.eaf'.

    Returns:
        The output path and the modified document.
    """
    doc = read_eaf(eaf_path)
    eaf_dir = os.path.dirname(os.path.abspath(eaf_path))
    apply_media_action(doc, action, media_path, eaf_dir)
    output_path = append_to_stem(eaf_path, MEDIA_ACTIONS[action])
    write_eaf(doc, output_path, overwrite=overwrite)
    return output_path, doc

def update_media_dir(root_dir: str, action: str,
                     overwrite: bool = False) -> List[Tuple[str, Optional[str], Optional[str]]]:
    """
    Applies 'scrub' or 'filename' to every EAF file below `root_dir`.

    Files that fail are reported, not raised.

    Returns:
        (input path, output path or None, error message or None) per file.
    """
    if action not in ("scrub", "filename"):
        raise EafUtilError(f"Media action '{action}' needs a single EAF file")
    results = []
    suffix = f"_{MEDIA_ACTIONS[action]}.eaf"
    for path in find_files(root_dir, ".eaf"):
        if path.endswith(suffix):
            continue # output of an earlier run
        try:
            output_path, _ = update_media_file(path, action, overwrite=overwrite)
            results.append((path, output_path, None))
        except (EafUtilError, OSError) as e:
            logger.warning(f"Failed to update media in {path}: {e}")
            results.append((path, None, str(e)))
    return results

def format_media_list(doc: EafDocument) -> str:
    """Lists linked media, one descriptor per line pair."""
    if not doc.header.media_descriptors:
        return "  No linked media"
    lines = []
    for i, md in enumerate(doc.header.media_descriptors, start=1):
        lines.append(f"  {i:>2}. {md.media_url} ({md.mime_type})")
        lines.append(f"      Relative: {md.relative_media_url or '-'}")
    return "\n".join(lines)
