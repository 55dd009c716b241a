"""Orchestrates clip extraction and time-window filtering of EAF files."""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from tqdm import tqdm

from .clips import Clip, ClipManifest, ClipNaming, clip_filename, resolve_media_paths
from .eaf_io import read_eaf, write_eaf
from .exceptions import AnnotationNotFoundError, EafUtilError, MediaError
from .media_extractor import MediaExtractor
from .models import EafDocument, Tier
from .utils import ensure_dir_exists, ensure_writable

logger = logging.getLogger(__name__)

@dataclass
class ClipReport:
    """What a clips run produced (or, for a dry run, would produce)."""
    manifests: Dict[str, ClipManifest] = field(default_factory=dict)
    manifest_paths: Dict[str, str] = field(default_factory=dict)
    skipped: int = 0
    dryrun: bool = False

    def all_clips(self) -> List[Clip]:
        return [clip for manifest in self.manifests.values() for clip in manifest.clips]

    def longest(self) -> Optional[Clip]:
        return max(self.all_clips(), key=lambda c: c.duration, default=None)

    def shortest(self) -> Optional[Clip]:
        return min(self.all_clips(), key=lambda c: c.duration, default=None)

@dataclass
class FilterReport:
    output_path: str
    annotations_in: int
    annotations_out: int
    media: List[str] = field(default_factory=list)

def _safe_dirname(name: str) -> str:
    return name.replace("/", "_").replace("\\", "_")

class ClipGenerator:
    """
    Cuts linked media into one clip per annotation, and writes
    time-window excerpts of EAF files.
    """

    def __init__(self, extractor: MediaExtractor, naming: Optional[ClipNaming] = None):
        """
        Initializes the ClipGenerator.

        Args:
            extractor: The MediaExtractor that runs ffmpeg.
            naming: Clip file naming options.
        """
        self.extractor = extractor
        self.naming = naming or ClipNaming()

    def _select_tiers(self, doc: EafDocument, tier_ids: Optional[List[str]],
                      annotation_id: Optional[str]) -> List[Tier]:
        if annotation_id is not None:
            tier = doc.tier_of_annotation().get(annotation_id)
            if tier is None:
                raise AnnotationNotFoundError(f"No annotation with ID '{annotation_id}'")
            if tier_ids and tier.tier_id not in tier_ids:
                raise AnnotationNotFoundError(f"Annotation '{annotation_id}' is not in tier(s) {', '.join(tier_ids)}")
            return [tier]
        if tier_ids is None:
            return list(doc.tiers)
        return [doc.require_tier(tier_id) for tier_id in tier_ids]

    def generate(
        self,
        eaf_path: str,
        tier_ids: Optional[List[str]] = None,
        annotation_id: Optional[str] = None,
        outdir: Optional[str] = None,
        min_duration: int = 0,
        dryrun: bool = False,
        overwrite: bool = False,
    ) -> ClipReport:
        """
        Extracts one clip per annotation and linked media file.

        Clips go to '<outdir or EAF dir>/<EAF stem>_CLIPS/<tier id>/' together
        with a '<tier id>.json' clip manifest.

        Args:
            eaf_path: The EAF file.
            tier_ids: Tiers to process. None processes all tiers.
            annotation_id: Only extract this annotation.
            outdir: Base output directory.
            min_duration: Skip annotations shorter than this, in milliseconds.
            dryrun: Plan the clips without running ffmpeg or writing files.
            overwrite: Replace existing clips and manifests.

        Returns:
            A ClipReport.

        Raises:
            TierNotFoundError: If a tier does not exist.
            AnnotationNotFoundError: If `annotation_id` does not exist.
            MediaError: If linked media is missing.
            FFmpegNotFoundError: If ffmpeg cannot be executed.
            ClipExtractionError: If ffmpeg fails.
        """
        start_time = time.time()
        doc = read_eaf(eaf_path)
        tiers = self._select_tiers(doc, tier_ids, annotation_id)

        media = resolve_media_paths(doc, eaf_path, dryrun=dryrun)
        if not media:
            if not dryrun:
                raise MediaError(f"No media files are linked in {eaf_path}")
            logger.warning(f"No media files are linked in {eaf_path}")
        if not dryrun:
            self.extractor.check_available()

        eaf_stem = os.path.splitext(os.path.basename(eaf_path))[0]
        base_dir = outdir or os.path.dirname(os.path.abspath(eaf_path))
        clips_dir = os.path.join(base_dir, f"{eaf_stem}_CLIPS")
        spans = doc.annotation_spans()
        report = ClipReport(dryrun=dryrun)

        for tier in tiers:
            tier_dir = os.path.join(clips_dir, _safe_dirname(tier.tier_id))
            manifest = ClipManifest(original_media=list(media))
            manifest_path = os.path.join(tier_dir, f"{_safe_dirname(tier.tier_id)}.json")
            if not dryrun:
                ensure_writable(manifest_path, overwrite)
                ensure_dir_exists(tier_dir)

            annotations = list(enumerate(tier.annotations, start=1))
            progress = tqdm(annotations, desc=tier.tier_id, unit="clip", disable=dryrun, leave=False)
            for index, annotation in progress:
                if annotation_id is not None and annotation.id != annotation_id:
                    continue
                start, end = spans.get(annotation.id, (None, None))
                if start is None or end is None:
                    logger.warning(f"Skipping annotation '{annotation.id}' in tier '{tier.tier_id}': no time values")
                    report.skipped += 1
                    continue
                if end - start < min_duration or end <= start:
                    logger.debug(f"Skipping annotation '{annotation.id}': {end - start} ms is below {min_duration} ms")
                    report.skipped += 1
                    continue
                outputs = [
                    os.path.join(tier_dir, clip_filename(m, index, tier.tier_id, annotation, start, end, self.naming))
                    for m in media
                ]
                if not dryrun:
                    for source, output in zip(media, outputs):
                        self.extractor.extract_timespan(source, start, end, output, overwrite=overwrite)
                manifest.clips.append(Clip(outputs, start, end))

            report.manifests[tier.tier_id] = manifest
            if not dryrun and manifest.clips:
                report.manifest_paths[tier.tier_id] = manifest.write(manifest_path, overwrite=overwrite)
            logger.info(f"Tier '{tier.tier_id}': {len(manifest.clips)} clip(s)")

        logger.info(f"Clip extraction finished in {time.time() - start_time:.2f} seconds")
        return report

    def filter(
        self,
        eaf_path: str,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
        tier_id: Optional[str] = None,
        annotation_id: Optional[str] = None,
        process_media: bool = False,
        overwrite: bool = False,
    ) -> FilterReport:
        """
        Writes '<stem>_<start>-<end>.eaf' containing only the annotations
        within a time window.

        The window is either given in milliseconds or taken from the span of
        an annotation. With `process_media`, each linked media file is cut to
        the window, linked in place of the original, and the excerpt is
        rebased to start at 0.

        Raises:
            EafUtilError: For an empty or unresolvable window.
            TierNotFoundError: If `tier_id` does not exist.
            AnnotationNotFoundError: If `annotation_id` is not in the tier.
            MediaError, FFmpegNotFoundError, ClipExtractionError: For media failures.
        """
        doc = read_eaf(eaf_path)
        if annotation_id is not None:
            start_ms, end_ms = self._annotation_window(doc, tier_id, annotation_id)
        if start_ms is None or end_ms is None:
            raise EafUtilError("A time window needs both a start and an end")
        if start_ms >= end_ms:
            raise EafUtilError(f"Window start ({start_ms} ms) must be before its end ({end_ms} ms)")

        eaf_dir = os.path.dirname(os.path.abspath(eaf_path))
        stem = os.path.splitext(os.path.basename(eaf_path))[0]
        output_path = os.path.join(eaf_dir, f"{stem}_{start_ms}-{end_ms}.eaf")
        ensure_writable(output_path, overwrite)

        filtered = doc.filter(start_ms, end_ms, rebase=process_media)
        written_media = []
        if process_media:
            media = resolve_media_paths(doc, eaf_path)
            if not media:
                raise MediaError(f"No media files are linked in {eaf_path}")
            self.extractor.check_available()
            filtered.scrub_media()
            for source in media:
                media_stem, ext = os.path.splitext(os.path.basename(source))
                clip_path = os.path.join(eaf_dir, f"{media_stem}_{start_ms}-{end_ms}{ext}")
                self.extractor.extract_timespan(source, start_ms, end_ms, clip_path, overwrite=overwrite)
                filtered.add_media(clip_path, eaf_dir)
                written_media.append(clip_path)

        write_eaf(filtered, output_path, overwrite=overwrite)
        return FilterReport(output_path, doc.annotation_count(), filtered.annotation_count(), written_media)

    def _annotation_window(self, doc: EafDocument, tier_id: Optional[str],
                           annotation_id: str) -> Tuple[int, int]:
        if tier_id is not None:
            tier = doc.require_tier(tier_id)
            if all(a.id != annotation_id for a in tier.annotations):
                raise AnnotationNotFoundError(f"No annotation with ID '{annotation_id}' in tier '{tier_id}'")
        annotation = doc.get_annotation(annotation_id)
        start, end = doc.span(annotation)
        if start is None or end is None:
            raise EafUtilError(f"Annotation '{annotation_id}' has no time values")
        return start, end
