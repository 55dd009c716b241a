"""Shared test fixtures for the eafutil test suite.

The sample document has:
- a main tier 'utterance' with two annotations,
- a Symbolic_Association tier 'translation' referring to it,
- a Time_Subdivision tier 'words' whose shared boundary slot is unaligned,
- an empty tier,
plus a controlled vocabulary and an EXTERNAL_REF that must survive a round trip.
"""

import json
import logging
from typing import Any, Dict

import pytest

SAMPLE_EAF = """<?xml version="1.0" encoding="UTF-8"?>
<ANNOTATION_DOCUMENT AUTHOR="tester" DATE="2024-05-01T10:00:00+02:00" FORMAT="3.0" VERSION="3.0" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xsi:noNamespaceSchemaLocation="http://www.mpi.nl/tools/elan/EAFv3.0.xsd">
    <HEADER MEDIA_FILE="" TIME_UNITS="milliseconds">
        <MEDIA_DESCRIPTOR MEDIA_URL="file:///nonexistent/dir/recording.wav" MIME_TYPE="audio/x-wav" RELATIVE_MEDIA_URL="./recording.wav"/>
        <PROPERTY NAME="URN">urn:nl-mpi-tools-elan-eaf:0000</PROPERTY>
        <PROPERTY NAME="lastUsedAnnotationId">6</PROPERTY>
    </HEADER>
    <TIME_ORDER>
        <TIME_SLOT TIME_SLOT_ID="ts1" TIME_VALUE="1000"/>
        <TIME_SLOT TIME_SLOT_ID="ts2" TIME_VALUE="1000"/>
        <TIME_SLOT TIME_SLOT_ID="ts3"/>
        <TIME_SLOT TIME_SLOT_ID="ts4" TIME_VALUE="2500"/>
        <TIME_SLOT TIME_SLOT_ID="ts5" TIME_VALUE="2500"/>
        <TIME_SLOT TIME_SLOT_ID="ts6" TIME_VALUE="3000"/>
        <TIME_SLOT TIME_SLOT_ID="ts7" TIME_VALUE="4200"/>
    </TIME_ORDER>
    <TIER ANNOTATOR="AB" LINGUISTIC_TYPE_REF="default-lt" PARTICIPANT="Speaker A" TIER_ID="utterance">
        <ANNOTATION>
            <ALIGNABLE_ANNOTATION ANNOTATION_ID="a1" TIME_SLOT_REF1="ts1" TIME_SLOT_REF2="ts5">
                <ANNOTATION_VALUE>Hello there world</ANNOTATION_VALUE>
            </ALIGNABLE_ANNOTATION>
        </ANNOTATION>
        <ANNOTATION>
            <ALIGNABLE_ANNOTATION ANNOTATION_ID="a2" TIME_SLOT_REF1="ts6" TIME_SLOT_REF2="ts7">
                <ANNOTATION_VALUE>The world is round.</ANNOTATION_VALUE>
            </ALIGNABLE_ANNOTATION>
        </ANNOTATION>
    </TIER>
    <TIER LINGUISTIC_TYPE_REF="translation" PARENT_REF="utterance" TIER_ID="translation">
        <ANNOTATION>
            <REF_ANNOTATION ANNOTATION_ID="a3" ANNOTATION_REF="a1">
                <ANNOTATION_VALUE>Hola mundo</ANNOTATION_VALUE>
            </REF_ANNOTATION>
        </ANNOTATION>
        <ANNOTATION>
            <REF_ANNOTATION ANNOTATION_ID="a4" ANNOTATION_REF="a2">
                <ANNOTATION_VALUE>El mundo es redondo.</ANNOTATION_VALUE>
            </REF_ANNOTATION>
        </ANNOTATION>
    </TIER>
    <TIER LINGUISTIC_TYPE_REF="words" PARENT_REF="utterance" TIER_ID="words">
        <ANNOTATION>
            <ALIGNABLE_ANNOTATION ANNOTATION_ID="a5" TIME_SLOT_REF1="ts2" TIME_SLOT_REF2="ts3">
                <ANNOTATION_VALUE>Hello</ANNOTATION_VALUE>
            </ALIGNABLE_ANNOTATION>
        </ANNOTATION>
        <ANNOTATION>
            <ALIGNABLE_ANNOTATION ANNOTATION_ID="a6" TIME_SLOT_REF1="ts3" TIME_SLOT_REF2="ts4">
                <ANNOTATION_VALUE>there</ANNOTATION_VALUE>
            </ALIGNABLE_ANNOTATION>
        </ANNOTATION>
    </TIER>
    <TIER LINGUISTIC_TYPE_REF="default-lt" TIER_ID="empty"/>
    <LINGUISTIC_TYPE GRAPHIC_REFERENCES="false" LINGUISTIC_TYPE_ID="default-lt" TIME_ALIGNABLE="true"/>
    <LINGUISTIC_TYPE CONSTRAINTS="Symbolic_Association" GRAPHIC_REFERENCES="false" LINGUISTIC_TYPE_ID="translation" TIME_ALIGNABLE="false"/>
    <LINGUISTIC_TYPE CONSTRAINTS="Time_Subdivision" CONTROLLED_VOCABULARY_REF="pos" GRAPHIC_REFERENCES="false" LINGUISTIC_TYPE_ID="words" TIME_ALIGNABLE="true"/>
    <LOCALE COUNTRY_CODE="US" LANGUAGE_CODE="en"/>
    <LANGUAGE LANG_DEF="http://cdb.iso.org/lg/CDB-00130975-001" LANG_ID="eng" LANG_LABEL="English (eng)"/>
    <CONSTRAINT DESCRIPTION="Time subdivision of parent annotation's time interval, no time gaps allowed within this interval" STEREOTYPE="Time_Subdivision"/>
    <CONSTRAINT DESCRIPTION="Symbolic subdivision of a parent annotation. Annotations refering to the same parent are ordered" STEREOTYPE="Symbolic_Subdivision"/>
    <CONSTRAINT DESCRIPTION="1-1 association with a parent annotation" STEREOTYPE="Symbolic_Association"/>
    <CONSTRAINT DESCRIPTION="Time alignable annotations within the parent annotation's time interval, gaps are allowed" STEREOTYPE="Included_In"/>
    <CONTROLLED_VOCABULARY CV_ID="pos">
        <DESCRIPTION LANG_REF="eng">Parts of speech</DESCRIPTION>
        <CV_ENTRY_ML CVE_ID="cveid1">
            <CVE_VALUE DESCRIPTION="interjection" LANG_REF="eng">INTJ</CVE_VALUE>
        </CV_ENTRY_ML>
    </CONTROLLED_VOCABULARY>
    <EXTERNAL_REF EXT_REF_ID="er1" TYPE="iso12620" VALUE="http://example.org/concept/1"/>
</ANNOTATION_DOCUMENT>
"""

@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging() replaces the root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)

@pytest.fixture
def sample_eaf_text() -> str:
    return SAMPLE_EAF

@pytest.fixture
def sample_eaf(tmp_path) -> str:
    """Path to the sample document written in a temporary directory."""
    path = tmp_path / "session.eaf"
    path.write_text(SAMPLE_EAF, encoding="utf-8")
    return str(path)

@pytest.fixture
def sample_doc(sample_eaf):
    from eafutil.eaf_io import read_eaf
    return read_eaf(sample_eaf)

@pytest.fixture
def whisper_result() -> Dict[str, Any]:
    """Standard openai-whisper output with word timestamps."""
    return {
        "text": " Hello world. Second part.",
        "language": "en",
        "segments": [
            {
                "id": 0, "seek": 0, "start": 0.0, "end": 1.5, "text": " Hello world.",
                "tokens": [50364, 2425, 1002, 13], "temperature": 0.0,
                "avg_logprob": -0.25, "compression_ratio": 0.8, "no_speech_prob": 0.01,
                "words": [
                    {"word": " Hello", "start": 0.0, "end": 0.6, "probability": 0.9},
                    {"word": " world.", "start": 0.6, "end": 1.6, "probability": 0.8},
                ],
            },
            {
                "id": 1, "seek": 0, "start": 2.0, "end": 3.2545, "text": " Second part.",
                "tokens": [50464, 5736, 644, 13], "temperature": 0.2,
                "avg_logprob": -0.4, "compression_ratio": 0.9, "no_speech_prob": 0.7,
                "words": [
                    {"word": " Second", "start": 2.0, "end": 2.5, "probability": 0.95},
                    {"word": " part.", "start": 2.5, "end": 3.2545, "probability": 0.85},
                ],
            },
        ],
    }

@pytest.fixture
def timestamped_result() -> Dict[str, Any]:
    """whisper-timestamped output: words carry 'text' and 'confidence'."""
    return {
        "text": " Good morning.",
        "language": "en",
        "segments": [
            {
                "id": 0, "seek": 0, "start": 0.5, "end": 1.25, "text": " Good morning.",
                "tokens": [1], "temperature": 0.0, "avg_logprob": -0.2,
                "compression_ratio": 0.7, "no_speech_prob": 0.05, "confidence": 0.93,
                "words": [
                    {"text": "Good", "start": 0.5, "end": 0.8, "confidence": 0.97},
                    {"text": "morning.", "start": 0.8, "end": 1.25, "confidence": 0.9},
                ],
            },
        ],
    }

@pytest.fixture
def write_json(tmp_path):
    """Writes data as JSON below tmp_path and returns the path."""
    def _write(name: str, data: Any) -> str:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)
    return _write

class FakeExtractor:
    """Stands in for MediaExtractor: records calls and writes placeholder files."""

    def __init__(self):
        self.calls = []
        self.audio_calls = []

    def check_available(self) -> str:
        return "/usr/bin/ffmpeg"

    def extract_timespan(self, media_path, start_ms, end_ms, output_path, overwrite=False):
        self.calls.append((media_path, start_ms, end_ms, output_path))
        with open(output_path, "wb") as f:
            f.write(b"clip")
        return output_path

    def extract_audio(self, video_filepath, output_audio_dir, output_filename=None):
        import os
        self.audio_calls.append(video_filepath)
        path = os.path.join(output_audio_dir, os.path.splitext(output_filename)[0] + ".wav")
        with open(path, "wb") as f:
            f.write(b"RIFF")
        return path

@pytest.fixture
def fake_extractor():
    return FakeExtractor()

@pytest.fixture
def linked_eaf(tmp_path, sample_eaf_text):
    """Sample document whose media link points at an existing file in tmp_path."""
    media = tmp_path / "recording.wav"
    media.write_bytes(b"RIFF")
    text = sample_eaf_text.replace("file:///nonexistent/dir/recording.wav", f"file://{media.as_posix()}")
    path = tmp_path / "linked.eaf"
    path.write_text(text, encoding="utf-8")
    return str(path), str(media)
