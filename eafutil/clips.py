"""Clip manifests, clip file naming and linked media resolution."""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import FileSystemError, MediaError, TranscriptParseError
from .models import Annotation, EafDocument
from .text import REMOVE_PATTERN, process_string
from .utils import ensure_writable

logger = logging.getLogger(__name__)

@dataclass
class Clip:
    """One extracted annotation: its clip files and where it sits in the original media."""
    media: List[str]
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start

@dataclass
class ClipManifest:
    """
    Records the clips cut from one tier.

    Serialized as
    {"original_media": [...], "clips": [{"media": [...], "start": ms, "end": ms}]}.
    whisper2eaf uses it to place per-clip transcripts back on the original timeline.
    """
    original_media: List[str] = field(default_factory=list)
    clips: List[Clip] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_media": list(self.original_media),
            "clips": [{"media": list(c.media), "start": c.start, "end": c.end} for c in self.clips],
        }

    @classmethod
    def from_dict(cls, data: Any, source: str = "<dict>") -> "ClipManifest":
        try:
            return cls(
                original_media=[str(m) for m in data.get("original_media", [])],
                clips=[Clip([str(m) for m in c["media"]], int(c["start"]), int(c["end"])) for c in data["clips"]],
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise TranscriptParseError(f"{source} is not a valid clip manifest: {e}") from e

    @classmethod
    def read(cls, path: str) -> "ClipManifest":
        """
        Reads a manifest written by the clips command.

        Raises:
            FileNotFoundError: If the file does not exist.
            TranscriptParseError: If the JSON is malformed or has the wrong shape.
        """
        if not os.path.isfile(path):
            raise FileNotFoundError(f"Clip manifest not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TranscriptParseError(f"Malformed JSON in clip manifest {path}: {e}") from e
        return cls.from_dict(data, path)

    def write(self, path: str, overwrite: bool = False) -> str:
        ensure_writable(path, overwrite)
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise FileSystemError(f"Could not write clip manifest {path}: {e}") from e
        logger.info(f"Wrote clip manifest {path}")
        return path

    def find_by_stem(self, name: str) -> Optional[Clip]:
        """
        Finds the clip a transcript file belongs to.

        'clip.json', 'clip.wav.json' and 'clip.wav.en.json' all belong to
        the clip 'clip.wav'. Only the media file's last extension is
        dropped, so dots inside clip names are kept.

        Raises:
            TranscriptParseError: If the name fits more than one clip.
        """
        key = os.path.basename(name)
        if key.lower().endswith(".json"):
            key = key[:-len(".json")]
        exact, prefixed = [], []
        for clip in self.clips:
            names = [(os.path.basename(m), os.path.splitext(os.path.basename(m))[0]) for m in clip.media]
            if any(key in (base, stem) for base, stem in names):
                exact.append(clip)
            elif any(key.startswith(stem + ".") for _, stem in names):
                prefixed.append(clip)
        matches = exact or prefixed
        if len(matches) > 1:
            raise TranscriptParseError(f"{name} matches {len(matches)} clips in the manifest")
        return matches[0] if matches else None

    def longest(self) -> Optional[Clip]:
        return max(self.clips, key=lambda c: c.duration, default=None)

    def shortest(self) -> Optional[Clip]:
        return min(self.clips, key=lambda c: c.duration, default=None)

@dataclass
class ClipNaming:
    """Which optional parts go into a clip file name."""
    tier_id: bool = False
    annotation_id: bool = False
    value: bool = False
    time: bool = False
    max_length: int = 20
    ascii_only: bool = False

def clip_filename(media_path: str, index: int, tier_id: str, annotation: Annotation,
                  start: int, end: int, naming: ClipNaming) -> str:
    """
    Builds a clip file name.

    '<media stem>_annotation_<NNNN>[_<tier>][_<id>][_<value>][_<start>-<end>]<media ext>'
    """
    stem, ext = os.path.splitext(os.path.basename(media_path))
    parts = [f"{stem}_annotation_{index:04d}"]
    if naming.tier_id:
        parts.append(tier_id)
    if naming.annotation_id:
        parts.append(annotation.id)
    if naming.value:
        value = process_string(
            annotation.value,
            ascii_sub="_" if naming.ascii_only else None,
            whitespace_sub="_",
            remove=REMOVE_PATTERN,
            max_len=naming.max_length,
        )
        if value:
            parts.append(value)
    if naming.time:
        parts.append(f"{start}-{end}")
    name = "_".join(parts) + ext
    # Tier IDs may contain path separators
    return name.replace("/", "_").replace("\\", "_")

def resolve_media_paths(doc: EafDocument, eaf_path: Optional[str], dryrun: bool = False) -> List[str]:
    """
    Resolves the linked media files of a document.

    The absolute MEDIA_URL is used if that file exists, otherwise the
    RELATIVE_MEDIA_URL resolved against the EAF's directory.

    Args:
        doc: The document.
        eaf_path: Path of the EAF file.
        dryrun: Keep unresolved absolute paths instead of raising.

    Returns:
        Existing media paths, in header order.

    Raises:
        MediaError: If any linked file exists at neither location.
    """
    eaf_dir = os.path.dirname(os.path.abspath(eaf_path)) if eaf_path else None
    resolved = []
    missing = []
    for absolute, relative in doc.media_paths(eaf_dir):
        if absolute and os.path.isfile(absolute):
            resolved.append(absolute)
        elif relative and os.path.isfile(relative):
            logger.info(f"Media not found at {absolute}, using relative path {relative}")
            resolved.append(relative)
        elif dryrun:
            resolved.append(absolute)
        else:
            missing.append(absolute if not relative else f"{absolute} (or {relative})")
    if missing:
        raise MediaError("Linked media not found: " + ", ".join(missing))
    return resolved
