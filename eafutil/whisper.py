"""Whisper transcript models and their conversion to EAF."""

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .clips import ClipManifest
from .exceptions import MediaError, TranscriptParseError
from .models import EafDocument, LinguisticType
from .utils import seconds_to_ms

logger = logging.getLogger(__name__)

SEGMENT_TIER = "segments"
WORD_TIER = "words"
WORD_LINGUISTIC_TYPE = "words"
REF_LINGUISTIC_TYPE = "whisper_ref_values"

# Per-segment values written as Symbolic_Association tiers
WHISPER_REF_TIERS = ("avg_logprob", "compression_ratio", "id", "no_speech_prob", "seek", "temperature")

def _field(data: Dict[str, Any], key: str, kind: type, source: str, default: Any = ...) -> Any:
    """Reads a typed value from a JSON object, raising TranscriptParseError on mismatch."""
    if not isinstance(data, dict):
        raise TranscriptParseError(f"{source}: expected an object, got {type(data).__name__}")
    if key not in data or data[key] is None:
        if default is not ...:
            return default
        raise TranscriptParseError(f"{source}: missing field '{key}'")
    value = data[key]
    if kind is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TranscriptParseError(f"{source}: field '{key}' must be a number, got {value!r}")
        return float(value)
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TranscriptParseError(f"{source}: field '{key}' must be an integer, got {value!r}")
        return value
    if not isinstance(value, kind):
        raise TranscriptParseError(f"{source}: field '{key}' must be of type {kind.__name__}, got {value!r}")
    return value

def _clamp_word(start: int, end: int, seg_start: int, seg_end: int) -> Tuple[int, int]:
    # Included_In children must lie within the parent annotation
    start = min(max(start, seg_start), seg_end)
    end = min(max(end, start), seg_end)
    return start, end

class Transcript(ABC):
    """Common interface for the supported transcript flavours."""

    @abstractmethod
    def offset(self, seconds: float) -> None:
        """Shifts every timestamp by `seconds`."""
        pass

    @abstractmethod
    def extend(self, other: "Transcript") -> None:
        """Appends the segments of another transcript of the same flavour."""
        pass

    @abstractmethod
    def filter_no_speech(self, threshold: float) -> int:
        """Drops segments whose no-speech probability is at or above `threshold`."""
        pass

    @abstractmethod
    def to_eaf(self, author: str = "eafutil") -> EafDocument:
        """Builds an EAF document with segment and word tiers."""
        pass

@dataclass
class WhisperWord:
    word: str
    start: float
    end: float
    probability: float

@dataclass
class WhisperSegment:
    id: int
    seek: int
    start: float
    end: float
    text: str
    temperature: float
    avg_logprob: float
    compression_ratio: float
    no_speech_prob: float
    tokens: List[int] = field(default_factory=list)
    words: List[WhisperWord] = field(default_factory=list)

@dataclass
class WhisperTranscript(Transcript):
    """Output of openai-whisper, e.g. `whisper --output_format json --word_timestamps True`."""
    text: str = ""
    language: Optional[str] = None
    segments: List[WhisperSegment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any, source: str = "<json>") -> "WhisperTranscript":
        """
        Parses standard Whisper JSON.

        Raises:
            TranscriptParseError: If a required field is missing or mistyped.
        """
        segments = []
        for i, seg in enumerate(_field(data, "segments", list, source)):
            where = f"{source}, segment {i}"
            words = [
                WhisperWord(
                    word=_field(w, "word", str, f"{where}, word {j}"),
                    start=_field(w, "start", float, f"{where}, word {j}"),
                    end=_field(w, "end", float, f"{where}, word {j}"),
                    probability=_field(w, "probability", float, f"{where}, word {j}"),
                )
                for j, w in enumerate(_field(seg, "words", list, where, default=[]))
            ]
            segments.append(WhisperSegment(
                id=_field(seg, "id", int, where),
                seek=_field(seg, "seek", int, where),
                start=_field(seg, "start", float, where),
                end=_field(seg, "end", float, where),
                text=_field(seg, "text", str, where),
                temperature=_field(seg, "temperature", float, where),
                avg_logprob=_field(seg, "avg_logprob", float, where),
                compression_ratio=_field(seg, "compression_ratio", float, where),
                no_speech_prob=_field(seg, "no_speech_prob", float, where),
                tokens=_field(seg, "tokens", list, where, default=[]),
                words=words,
            ))
        return cls(
            text=_field(data, "text", str, source, default=""),
            language=_field(data, "language", str, source, default=None),
            segments=segments,
        )

    def offset(self, seconds: float) -> None:
        for seg in self.segments:
            seg.start += seconds
            seg.end += seconds
            for word in seg.words:
                word.start += seconds
                word.end += seconds

    def extend(self, other: Transcript) -> None:
        if not isinstance(other, WhisperTranscript):
            raise TranscriptParseError("Cannot join standard Whisper output with whisper-timestamped output")
        self.text = " ".join(t for t in (self.text.strip(), other.text.strip()) if t)
        if self.language is None:
            self.language = other.language
        self.segments.extend(other.segments)

    def filter_no_speech(self, threshold: float) -> int:
        before = len(self.segments)
        self.segments = [s for s in self.segments if s.no_speech_prob < threshold]
        return before - len(self.segments)

    def to_eaf(self, author: str = "eafutil") -> EafDocument:
        doc = EafDocument.new(author)
        doc.add_linguistic_type(LinguisticType(WORD_LINGUISTIC_TYPE, time_alignable=True, constraints="Included_In"))
        doc.add_linguistic_type(LinguisticType(REF_LINGUISTIC_TYPE, time_alignable=False, constraints="Symbolic_Association"))
        doc.add_tier(SEGMENT_TIER)
        doc.add_tier(WORD_TIER, WORD_LINGUISTIC_TYPE, parent_ref=SEGMENT_TIER)
        for name in WHISPER_REF_TIERS:
            doc.add_tier(name, REF_LINGUISTIC_TYPE, parent_ref=SEGMENT_TIER)

        for seg in self.segments:
            seg_start, seg_end = seconds_to_ms(seg.start), seconds_to_ms(seg.end)
            annotation = doc.add_alignable(SEGMENT_TIER, seg_start, seg_end, seg.text.strip())
            for word in seg.words:
                start, end = _clamp_word(seconds_to_ms(word.start), seconds_to_ms(word.end), seg_start, seg_end)
                doc.add_alignable(WORD_TIER, start, end, word.word.strip())
            for name in WHISPER_REF_TIERS:
                doc.add_ref(name, annotation.id, str(getattr(seg, name)))
        return doc

@dataclass
class TimestampedWord:
    text: str
    start: float
    end: float
    confidence: float

@dataclass
class TimestampedSegment:
    start: float
    end: float
    text: str
    confidence: float
    no_speech_prob: Optional[float] = None
    words: List[TimestampedWord] = field(default_factory=list)

@dataclass
class TimestampedTranscript(Transcript):
    """Output of whisper-timestamped, which adds per-word confidence scores."""
    text: str = ""
    language: Optional[str] = None
    segments: List[TimestampedSegment] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any, source: str = "<json>") -> "TimestampedTranscript":
        """
        Parses whisper-timestamped JSON.

        Raises:
            TranscriptParseError: If a required field is missing or mistyped.
        """
        segments = []
        for i, seg in enumerate(_field(data, "segments", list, source)):
            where = f"{source}, segment {i}"
            words = [
                TimestampedWord(
                    text=_field(w, "text", str, f"{where}, word {j}"),
                    start=_field(w, "start", float, f"{where}, word {j}"),
                    end=_field(w, "end", float, f"{where}, word {j}"),
                    confidence=_field(w, "confidence", float, f"{where}, word {j}"),
                )
                for j, w in enumerate(_field(seg, "words", list, where, default=[]))
            ]
            segments.append(TimestampedSegment(
                start=_field(seg, "start", float, where),
                end=_field(seg, "end", float, where),
                text=_field(seg, "text", str, where),
                confidence=_field(seg, "confidence", float, where),
                no_speech_prob=_field(seg, "no_speech_prob", float, where, default=None),
                words=words,
            ))
        return cls(
            text=_field(data, "text", str, source, default=""),
            language=_field(data, "language", str, source, default=None),
            segments=segments,
        )

    def offset(self, seconds: float) -> None:
        for seg in self.segments:
            seg.start += seconds
            seg.end += seconds
            for word in seg.words:
                word.start += seconds
                word.end += seconds

    def extend(self, other: Transcript) -> None:
        if not isinstance(other, TimestampedTranscript):
            raise TranscriptParseError("Cannot join whisper-timestamped output with standard Whisper output")
        self.text = " ".join(t for t in (self.text.strip(), other.text.strip()) if t)
        if self.language is None:
            self.language = other.language
        self.segments.extend(other.segments)

    def filter_no_speech(self, threshold: float) -> int:
        before = len(self.segments)
        self.segments = [
            s for s in self.segments
            if s.no_speech_prob is None or s.no_speech_prob < threshold
        ]
        return before - len(self.segments)

    def to_eaf(self, author: str = "eafutil") -> EafDocument:
        doc = EafDocument.new(author)
        doc.add_linguistic_type(LinguisticType(WORD_LINGUISTIC_TYPE, time_alignable=True, constraints="Included_In"))
        doc.add_linguistic_type(LinguisticType(REF_LINGUISTIC_TYPE, time_alignable=False, constraints="Symbolic_Association"))
        doc.add_tier(SEGMENT_TIER)
        doc.add_tier(WORD_TIER, WORD_LINGUISTIC_TYPE, parent_ref=SEGMENT_TIER)
        doc.add_tier("confidence", REF_LINGUISTIC_TYPE, parent_ref=SEGMENT_TIER)

        for seg in self.segments:
            seg_start, seg_end = seconds_to_ms(seg.start), seconds_to_ms(seg.end)
            annotation = doc.add_alignable(SEGMENT_TIER, seg_start, seg_end, seg.text.strip())
            for word in seg.words:
                start, end = _clamp_word(seconds_to_ms(word.start), seconds_to_ms(word.end), seg_start, seg_end)
                doc.add_alignable(WORD_TIER, start, end, word.text.strip())
            doc.add_ref("confidence", annotation.id, str(seg.confidence))
        return doc

def load_json(path: str) -> Any:
    """Loads a JSON file, raising TranscriptParseError when it is malformed."""
    if not os.path.isfile(path):
        raise FileNotFoundError(f"JSON file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TranscriptParseError(f"Malformed JSON in {path}: {e}") from e

def transcript_from_dict(data: Any, source: str = "<json>") -> Transcript:
    """
    Parses standard Whisper JSON, falling back to whisper-timestamped JSON.

    Raises:
        TranscriptParseError: If the data matches neither flavour.
    """
    try:
        return WhisperTranscript.from_dict(data, source)
    except TranscriptParseError as standard_error:
        logger.debug(f"{source} is not standard Whisper output ({standard_error}), trying whisper-timestamped")
        try:
            return TimestampedTranscript.from_dict(data, source)
        except TranscriptParseError as e:
            raise TranscriptParseError(
                f"{source} is neither Whisper nor whisper-timestamped output. "
                f"Whisper: {standard_error}. whisper-timestamped: {e}"
            ) from e

def read_transcript(path: str) -> Transcript:
    return transcript_from_dict(load_json(path), path)

def join_transcripts(paths: List[str], manifest: ClipManifest) -> Transcript:
    """
    Merges per-clip transcripts into one on the original media's timeline.

    Each transcript is matched to its clip by file name (see
    ClipManifest.find_by_stem) and shifted by the clip's start time.

    Raises:
        TranscriptParseError: If a transcript has no matching clip or the
                              files mix flavours.
    """
    placed = []
    for path in paths:
        clip = manifest.find_by_stem(os.path.basename(path))
        if clip is None:
            raise TranscriptParseError(f"No clip in the manifest matches {path}")
        transcript = read_transcript(path)
        transcript.offset(clip.start / 1000)
        placed.append((clip.start, path, transcript))
    if not placed:
        raise TranscriptParseError("No transcripts to join")

    placed.sort(key=lambda item: (item[0], item[1]))
    joined = placed[0][2]
    for _, _, transcript in placed[1:]:
        joined.extend(transcript)
    return joined

def transcript_to_eaf(transcript: Transcript, media: Optional[List[str]] = None,
                      no_speech_threshold: float = 1.0, relative_to: Optional[str] = None,
                      author: str = "eafutil") -> EafDocument:
    """
    Converts a transcript to EAF, dropping no-speech segments and linking media.

    Raises:
        MediaError: If a media file does not exist.
    """
    for media_path in media or []:
        if not os.path.isfile(media_path):
            raise MediaError(f"Media file not found: {media_path}")
    dropped = transcript.filter_no_speech(no_speech_threshold)
    if dropped:
        logger.info(f"Dropped {dropped} segment(s) with no_speech_prob >= {no_speech_threshold}")
    doc = transcript.to_eaf(author)
    for media_path in media or []:
        doc.add_media(media_path, relative_to)
    return doc
