"""Data models for eafutil: an in-memory ELAN annotation document."""

import copy
import logging
import mimetypes
import os
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import AnnotationNotFoundError, TierNotFoundError
from .utils import path_to_file_url, url_to_path

logger = logging.getLogger(__name__)

Span = Tuple[Optional[int], Optional[int]]

DEFAULT_LINGUISTIC_TYPE = "default-lt"

# Stereotypes ELAN writes into every new document
CONSTRAINT_DESCRIPTIONS = {
    "Time_Subdivision": "Time subdivision of parent annotation's time interval, no time gaps allowed within this interval",
    "Symbolic_Subdivision": "Symbolic subdivision of a parent annotation. Annotations refering to the same parent are ordered",
    "Symbolic_Association": "1-1 association with a parent annotation",
    "Included_In": "Time alignable annotations within the parent annotation's time interval, gaps are allowed",
}

@dataclass
class TimeSlot:
    """A named time anchor. `value` is in milliseconds, None for unaligned slots."""
    id: str
    value: Optional[int] = None

@dataclass
class Annotation:
    """
    A single annotation.

    Alignable annotations reference two time slots. Referring annotations
    point to a parent annotation via `ref_id` and inherit its time span.
    """
    id: str
    value: str = ""
    ts_ref1: Optional[str] = None
    ts_ref2: Optional[str] = None
    ref_id: Optional[str] = None
    previous: Optional[str] = None # PREVIOUS_ANNOTATION, symbolic subdivisions only
    ext_ref: Optional[str] = None
    lang_ref: Optional[str] = None
    cve_ref: Optional[str] = None

    @property
    def is_ref(self) -> bool:
        return self.ref_id is not None

    @property
    def is_alignable(self) -> bool:
        return self.ref_id is None

@dataclass
class Tier:
    tier_id: str
    linguistic_type_ref: str = DEFAULT_LINGUISTIC_TYPE
    parent_ref: Optional[str] = None
    participant: Optional[str] = None
    annotator: Optional[str] = None
    default_locale: Optional[str] = None
    lang_ref: Optional[str] = None
    ext_ref: Optional[str] = None
    annotations: List[Annotation] = field(default_factory=list)

    def values(self) -> List[str]:
        return [a.value for a in self.annotations]

    def __len__(self) -> int:
        return len(self.annotations)

@dataclass
class MediaDescriptor:
    media_url: str
    mime_type: str = "unknown"
    relative_media_url: Optional[str] = None
    time_origin: Optional[int] = None
    extracted_from: Optional[str] = None

@dataclass
class LinkedFileDescriptor:
    link_url: str
    mime_type: str = "unknown"
    relative_link_url: Optional[str] = None
    time_origin: Optional[int] = None
    associated_with: Optional[str] = None

@dataclass
class Property:
    name: str
    value: str = ""

@dataclass
class Header:
    media_file: str = ""
    time_units: str = "milliseconds"
    media_descriptors: List[MediaDescriptor] = field(default_factory=list)
    linked_file_descriptors: List[LinkedFileDescriptor] = field(default_factory=list)
    properties: List[Property] = field(default_factory=list)

    def get_property(self, name: str) -> Optional[str]:
        for prop in self.properties:
            if prop.name == name:
                return prop.value
        return None

    def set_property(self, name: str, value: str) -> None:
        for prop in self.properties:
            if prop.name == name:
                prop.value = value
                return
        self.properties.append(Property(name, value))

@dataclass
class LinguisticType:
    linguistic_type_id: str
    time_alignable: bool = True
    constraints: Optional[str] = None # stereotype, e.g. "Symbolic_Association"
    graphic_references: bool = False
    controlled_vocabulary: Optional[str] = None
    ext_ref: Optional[str] = None
    lexicon_ref: Optional[str] = None

@dataclass
class Locale:
    language_code: str
    country_code: Optional[str] = None
    variant: Optional[str] = None

@dataclass
class Language:
    lang_id: str
    lang_def: Optional[str] = None
    lang_label: Optional[str] = None

@dataclass
class Constraint:
    stereotype: str
    description: Optional[str] = None

@dataclass
class CVEntry:
    cve_id: Optional[str]
    value: str
    description: Optional[str] = None
    lang_ref: Optional[str] = None
    ext_ref: Optional[str] = None

@dataclass
class ControlledVocabulary:
    cv_id: str
    description: Optional[str] = None
    description_lang_ref: Optional[str] = None
    ext_ref: Optional[str] = None
    entries: List[CVEntry] = field(default_factory=list)

@dataclass
class EafDocument:
    """
    An ELAN annotation document (EAF 3.0).

    Elements eafutil does not interpret (LEXICON_REF, REF_LINK_SET,
    EXTERNAL_REF) are kept verbatim in `extra_elements` and written back
    unchanged.
    """
    author: str = ""
    date: str = ""
    version: str = "3.0"
    eaf_format: str = "3.0"
    header: Header = field(default_factory=Header)
    time_slots: List[TimeSlot] = field(default_factory=list)
    tiers: List[Tier] = field(default_factory=list)
    linguistic_types: List[LinguisticType] = field(default_factory=list)
    locales: List[Locale] = field(default_factory=list)
    languages: List[Language] = field(default_factory=list)
    constraints: List[Constraint] = field(default_factory=list)
    controlled_vocabularies: List[ControlledVocabulary] = field(default_factory=list)
    extra_elements: List[Any] = field(default_factory=list, repr=False, compare=False)
    path: Optional[str] = field(default=None, compare=False)
    _annotation_counter: Optional[int] = field(default=None, init=False, repr=False, compare=False)
    _time_slot_counter: Optional[int] = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def new(cls, author: str = "eafutil") -> "EafDocument":
        """Creates an empty document with the defaults ELAN puts in a new file."""
        doc = cls(author=author, date=datetime.now().astimezone().isoformat(timespec="seconds"))
        doc.header.set_property("lastUsedAnnotationId", "0")
        doc.linguistic_types.append(LinguisticType(DEFAULT_LINGUISTIC_TYPE))
        doc.locales.append(Locale("en", "US"))
        doc.constraints = [Constraint(name, desc) for name, desc in CONSTRAINT_DESCRIPTIONS.items()]
        return doc

    # --- Lookups ---

    def get_tier(self, tier_id: str) -> Optional[Tier]:
        for tier in self.tiers:
            if tier.tier_id == tier_id:
                return tier
        return None

    def require_tier(self, tier_id: str) -> Tier:
        """Returns the tier with `tier_id` or raises TierNotFoundError."""
        tier = self.get_tier(tier_id)
        if tier is None:
            available = ", ".join(t.tier_id for t in self.tiers) or "none"
            raise TierNotFoundError(f"No tier with ID '{tier_id}'. Available tiers: {available}")
        return tier

    def tier_ids(self) -> List[str]:
        return [t.tier_id for t in self.tiers]

    def annotations_by_id(self) -> Dict[str, Annotation]:
        return {a.id: a for tier in self.tiers for a in tier.annotations}

    def tier_of_annotation(self) -> Dict[str, Tier]:
        """Maps annotation ID to the tier holding it."""
        return {a.id: tier for tier in self.tiers for a in tier.annotations}

    def get_annotation(self, annotation_id: str) -> Annotation:
        """Returns the annotation with `annotation_id` or raises AnnotationNotFoundError."""
        for tier in self.tiers:
            for annotation in tier.annotations:
                if annotation.id == annotation_id:
                    return annotation
        raise AnnotationNotFoundError(f"No annotation with ID '{annotation_id}'")

    def get_linguistic_type(self, linguistic_type_id: str) -> Optional[LinguisticType]:
        for lt in self.linguistic_types:
            if lt.linguistic_type_id == linguistic_type_id:
                return lt
        return None

    def parent_tier(self, tier_id: str) -> Optional[Tier]:
        tier = self.require_tier(tier_id)
        if tier.parent_ref is None:
            return None
        return self.get_tier(tier.parent_ref)

    def child_tiers(self, tier_id: str) -> List[Tier]:
        return [t for t in self.tiers if t.parent_ref == tier_id]

    def main_tiers(self) -> List[Tier]:
        """Tiers without a parent."""
        return [t for t in self.tiers if t.parent_ref is None]

    def is_tokenized(self, tier_id: str, recursive: bool = False) -> bool:
        """
        True if the tier holds tokens, i.e. its linguistic type is a
        symbolic subdivision of its parent. With `recursive`, any tokenized
        descendant counts as well.
        """
        tier = self.require_tier(tier_id)
        lt = self.get_linguistic_type(tier.linguistic_type_ref)
        if lt is not None and lt.constraints == "Symbolic_Subdivision":
            return True
        if recursive:
            return any(self.is_tokenized(child.tier_id, True) for child in self.child_tiers(tier_id))
        return False

    # --- Time ---

    def time_slot_values(self) -> Dict[str, Optional[int]]:
        return {ts.id: ts.value for ts in self.time_slots}

    def annotation_spans(self) -> Dict[str, Span]:
        """
        Resolves the time span of every annotation in one pass.

        Referring annotations inherit the span of the alignable annotation
        at the end of their ANNOTATION_REF chain. Unaligned time slots
        resolve to None.

        Returns:
            Mapping of annotation ID to (start_ms, end_ms).
        """
        slots = self.time_slot_values()
        return self._resolve_spans(lambda a: (slots.get(a.ts_ref1), slots.get(a.ts_ref2)))

    def effective_spans(self) -> Dict[str, Span]:
        """
        Like annotation_spans(), but unaligned slots take the nearest aligned
        value: the preceding one for a start, the following one for an end.
        """
        before: Dict[str, Optional[int]] = {}
        after: Dict[str, Optional[int]] = {}
        last = None
        for slot in self.time_slots:
            if slot.value is not None:
                last = slot.value
            before[slot.id] = last
        last = None
        for slot in reversed(self.time_slots):
            if slot.value is not None:
                last = slot.value
            after[slot.id] = last
        return self._resolve_spans(lambda a: (before.get(a.ts_ref1), after.get(a.ts_ref2)))

    def _resolve_spans(self, alignable_span) -> Dict[str, Span]:
        by_id = self.annotations_by_id()
        spans: Dict[str, Span] = {}
        for annotation in by_id.values():
            chain = []
            chain_ids = set()
            current = annotation
            while current is not None and current.id not in spans and current.is_ref:
                if current.id in chain_ids:
                    break # circular references
                chain.append(current)
                chain_ids.add(current.id)
                current = by_id.get(current.ref_id)
            if current is None or current.id in chain_ids:
                span: Span = (None, None)
            elif current.id in spans:
                span = spans[current.id]
            else:
                span = alignable_span(current)
                spans[current.id] = span
            for linked in chain:
                spans[linked.id] = span
        return spans

    def span(self, annotation: Annotation) -> Span:
        """Returns (start_ms, end_ms) for a single annotation."""
        return self.annotation_spans().get(annotation.id, (None, None))

    def effective_span(self, annotation: Annotation) -> Span:
        return self.effective_spans().get(annotation.id, (None, None))

    def parent_annotation(self, tier: Tier, annotation: Annotation,
                          spans: Optional[Dict[str, Span]] = None) -> Optional[Annotation]:
        """
        Finds the annotation on the parent tier that `annotation` belongs to.

        Referring annotations name their parent directly. Alignable
        annotations on a child tier belong to the parent annotation whose
        span contains their start.
        """
        if annotation.is_ref:
            return self.annotations_by_id().get(annotation.ref_id)
        if tier.parent_ref is None:
            return None
        parent = self.get_tier(tier.parent_ref)
        if parent is None:
            return None
        spans = spans if spans is not None else self.effective_spans()
        start = spans.get(annotation.id, (None, None))[0]
        if start is None:
            return None
        for candidate in parent.annotations:
            p_start, p_end = spans.get(candidate.id, (None, None))
            if p_start is not None and p_end is not None and p_start <= start < p_end:
                return candidate
        return None

    # --- Statistics ---

    def tier_count(self) -> int:
        return len(self.tiers)

    def annotation_count(self) -> int:
        return sum(len(t.annotations) for t in self.tiers)

    def average_annotations_per_tier(self) -> float:
        if not self.tiers:
            return 0.0
        return self.annotation_count() / len(self.tiers)

    def _timed_annotations(self) -> List[Tuple[int, int, Tier, Annotation]]:
        spans = self.annotation_spans()
        timed = []
        for tier in self.tiers:
            for annotation in tier.annotations:
                start, end = spans.get(annotation.id, (None, None))
                if start is not None and end is not None:
                    timed.append((start, end, tier, annotation))
        return timed

    def first_annotation(self) -> Optional[Tuple[Tier, Annotation, int, int]]:
        """The time-resolved annotation with the earliest start."""
        timed = self._timed_annotations()
        if not timed:
            return None
        start, end, tier, annotation = min(timed, key=lambda t: (t[0], t[1]))
        return tier, annotation, start, end

    def last_annotation(self) -> Optional[Tuple[Tier, Annotation, int, int]]:
        """The time-resolved annotation with the latest start."""
        timed = self._timed_annotations()
        if not timed:
            return None
        start, end, tier, annotation = max(timed, key=lambda t: (t[0], t[1]))
        return tier, annotation, start, end

    # --- Building ---

    def add_linguistic_type(self, linguistic_type: LinguisticType) -> None:
        """Adds a linguistic type unless one with the same ID exists."""
        if self.get_linguistic_type(linguistic_type.linguistic_type_id) is None:
            self.linguistic_types.append(linguistic_type)

    def add_tier(self, tier_id: str, linguistic_type_ref: str = DEFAULT_LINGUISTIC_TYPE,
                 parent_ref: Optional[str] = None, participant: Optional[str] = None,
                 annotator: Optional[str] = None) -> Tier:
        """
        Appends a new, empty tier.

        Raises:
            ValueError: If a tier with `tier_id` already exists.
            TierNotFoundError: If `parent_ref` names a missing tier.
        """
        if self.get_tier(tier_id) is not None:
            raise ValueError(f"Tier '{tier_id}' already exists")
        if parent_ref is not None:
            self.require_tier(parent_ref)
        tier = Tier(tier_id, linguistic_type_ref, parent_ref, participant, annotator)
        self.tiers.append(tier)
        return tier

    def _next_id(self, counter_attr: str, prefix: str, existing: List[str]) -> str:
        counter = getattr(self, counter_attr)
        if counter is None:
            counter = 0
            for value in existing:
                if value.startswith(prefix) and value[len(prefix):].isdigit():
                    counter = max(counter, int(value[len(prefix):]))
        counter += 1
        setattr(self, counter_attr, counter)
        return f"{prefix}{counter}"

    def next_annotation_id(self) -> str:
        return self._next_id("_annotation_counter", "a", list(self.annotations_by_id()))

    def next_time_slot_id(self) -> str:
        return self._next_id("_time_slot_counter", "ts", [ts.id for ts in self.time_slots])

    def add_alignable(self, tier_id: str, start_ms: int, end_ms: int, value: str) -> Annotation:
        """Adds a time-aligned annotation with two new time slots."""
        tier = self.require_tier(tier_id)
        ts1 = TimeSlot(self.next_time_slot_id(), start_ms)
        ts2 = TimeSlot(self.next_time_slot_id(), end_ms)
        self.time_slots.extend([ts1, ts2])
        annotation = Annotation(self.next_annotation_id(), value, ts_ref1=ts1.id, ts_ref2=ts2.id)
        tier.annotations.append(annotation)
        return annotation

    def add_ref(self, tier_id: str, parent_annotation_id: str, value: str) -> Annotation:
        """Adds a referring annotation pointing at `parent_annotation_id`."""
        tier = self.require_tier(tier_id)
        annotation = Annotation(self.next_annotation_id(), value, ref_id=parent_annotation_id)
        tier.annotations.append(annotation)
        return annotation

    # --- Editing ---

    def shift(self, shift_ms: int) -> int:
        """
        Shifts every aligned time slot by `shift_ms`. Results below zero are
        set to zero.

        Returns:
            Number of time slots that were clamped to zero.
        """
        clamped = 0
        for slot in self.time_slots:
            if slot.value is None:
                continue
            value = slot.value + shift_ms
            if value < 0:
                clamped += 1
                value = 0
            slot.value = value
        if clamped:
            logger.warning(f"{clamped} time slot(s) would be negative after shifting {shift_ms} ms and were set to 0")
        return clamped

    def filter(self, start_ms: int, end_ms: int, rebase: bool = False) -> "EafDocument":
        """
        Returns a copy containing only annotations within a time window.

        Alignable annotations are kept when their effective span lies inside
        [start_ms, end_ms]. Referring annotations are kept when the alignable
        annotation they ultimately refer to is kept.

        Args:
            start_ms: Window start in milliseconds.
            end_ms: Window end in milliseconds.
            rebase: Shift the result so that `start_ms` becomes 0.

        Returns:
            A new EafDocument.
        """
        spans = self.effective_spans()
        filtered = copy.deepcopy(self)
        by_id = filtered.annotations_by_id()

        kept = set()
        for annotation in by_id.values():
            if annotation.is_alignable:
                start, end = spans.get(annotation.id, (None, None))
                if start is not None and end is not None and start_ms <= start and end <= end_ms:
                    kept.add(annotation.id)

        def root_kept(annotation: Annotation) -> bool:
            seen = set()
            while annotation is not None and annotation.is_ref and annotation.id not in seen:
                seen.add(annotation.id)
                annotation = by_id.get(annotation.ref_id)
            return annotation is not None and annotation.id in kept

        for annotation in by_id.values():
            if annotation.is_ref and root_kept(annotation):
                kept.add(annotation.id)

        used_slots = set()
        for tier in filtered.tiers:
            tier.annotations = [a for a in tier.annotations if a.id in kept]
            for annotation in tier.annotations:
                if annotation.previous is not None and annotation.previous not in kept:
                    annotation.previous = None
                if annotation.is_alignable:
                    used_slots.update((annotation.ts_ref1, annotation.ts_ref2))
        filtered.time_slots = [ts for ts in filtered.time_slots if ts.id in used_slots]

        if rebase:
            for slot in filtered.time_slots:
                if slot.value is not None:
                    slot.value = max(0, slot.value - start_ms)
        return filtered

    def prefix_tier_ids(self, prefix: str) -> None:
        """Renames every tier to '<prefix>_<tier_id>', keeping parent links intact."""
        for tier in self.tiers:
            tier.tier_id = f"{prefix}_{tier.tier_id}"
            if tier.parent_ref is not None:
                tier.parent_ref = f"{prefix}_{tier.parent_ref}"

    # --- Media ---

    def add_media(self, media_path: str, relative_to: Optional[str] = None) -> MediaDescriptor:
        """
        Links a media file.

        Args:
            media_path: Path to the media file.
            relative_to: Directory the relative URL is computed from,
                         normally the directory the EAF is written to.

        Returns:
            The new MediaDescriptor.
        """
        media_path = os.path.abspath(media_path)
        if relative_to:
            relative = os.path.relpath(media_path, os.path.abspath(relative_to))
        else:
            relative = os.path.basename(media_path)
        relative = relative.replace(os.sep, "/")
        if not relative.startswith("."):
            relative = f"./{relative}"
        descriptor = MediaDescriptor(
            media_url=path_to_file_url(media_path),
            mime_type=guess_mime_type(media_path),
            relative_media_url=relative,
        )
        self.header.media_descriptors.append(descriptor)
        return descriptor

    def remove_media(self, media_path: str) -> int:
        """
        Unlinks every media descriptor whose file name matches that of
        `media_path`.

        Returns:
            Number of descriptors removed.
        """
        name = os.path.basename(media_path)
        before = len(self.header.media_descriptors)
        self.header.media_descriptors = [
            md for md in self.header.media_descriptors
            if os.path.basename(url_to_path(md.media_url)) != name
        ]
        return before - len(self.header.media_descriptors)

    def scrub_media(self, filename_only: bool = False) -> int:
        """
        Removes all media descriptors, or with `filename_only` keeps them
        but reduces their URLs to bare file names.

        Returns:
            Number of descriptors affected.
        """
        count = len(self.header.media_descriptors)
        if filename_only:
            for md in self.header.media_descriptors:
                name = os.path.basename(url_to_path(md.media_url))
                md.media_url = name
                md.relative_media_url = f"./{name}"
        else:
            self.header.media_descriptors = []
        return count

    def media_paths(self, relative_to: Optional[str] = None) -> List[Tuple[str, Optional[str]]]:
        """
        Returns (absolute, relative) filesystem paths for each linked media
        file. Relative URLs are resolved against `relative_to`, or left as is.
        """
        paths = []
        for md in self.header.media_descriptors:
            absolute = url_to_path(md.media_url)
            relative = None
            if md.relative_media_url:
                relative = url_to_path(md.relative_media_url)
                if relative_to:
                    relative = os.path.normpath(os.path.join(relative_to, relative))
            paths.append((absolute, relative))
        return paths

    # --- Export ---

    def to_dict(self, simple: bool = False) -> Dict[str, Any]:
        """
        Converts the document to JSON-serialisable data.

        Args:
            simple: Only tiers with annotation values and resolved times.
        """
        if not simple:
            data = asdict(self)
            for key in ("extra_elements", "path", "_annotation_counter", "_time_slot_counter"):
                data.pop(key, None)
            return data
        spans = self.annotation_spans()
        return {
            "tiers": [
                {
                    "tier_id": tier.tier_id,
                    "parent_ref": tier.parent_ref,
                    "annotations": [
                        {
                            "id": a.id,
                            "value": a.value,
                            "start": spans.get(a.id, (None, None))[0],
                            "end": spans.get(a.id, (None, None))[1],
                        }
                        for a in tier.annotations
                    ],
                }
                for tier in self.tiers
            ]
        }

def guess_mime_type(path: str) -> str:
    """MIME type for a media file, 'unknown' if the extension is not recognised."""
    mime_type, _ = mimetypes.guess_type(path)
    if mime_type == "audio/wav":
        return "audio/x-wav" # ELAN's spelling
    return mime_type or "unknown"
