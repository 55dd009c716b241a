"""Tests for reading and writing EAF files."""

import xml.etree.ElementTree as ET

import pytest

from eafutil.eaf_io import eaf_from_string, eaf_to_string, read_eaf, write_eaf
from eafutil.exceptions import EafParseError, FileSystemError
from eafutil.models import EafDocument


class TestReadEaf:
    def test_document_attributes(self, sample_doc, sample_eaf):
        assert sample_doc.author == "tester"
        assert sample_doc.version == "3.0"
        assert sample_doc.path == sample_eaf

    def test_header(self, sample_doc):
        media = sample_doc.header.media_descriptors
        assert len(media) == 1
        assert media[0].media_url == "file:///nonexistent/dir/recording.wav"
        assert media[0].relative_media_url == "./recording.wav"
        assert sample_doc.header.get_property("URN") == "urn:nl-mpi-tools-elan-eaf:0000"

    def test_tiers_and_annotations(self, sample_doc):
        assert sample_doc.tier_ids() == ["utterance", "translation", "words", "empty"]
        utterance = sample_doc.require_tier("utterance")
        assert utterance.participant == "Speaker A"
        assert utterance.annotator == "AB"
        assert utterance.values() == ["Hello there world", "The world is round."]
        translation = sample_doc.require_tier("translation")
        assert translation.parent_ref == "utterance"
        assert translation.annotations[0].ref_id == "a1"
        assert translation.annotations[0].is_ref

    def test_unaligned_time_slot(self, sample_doc):
        assert sample_doc.time_slot_values()["ts3"] is None

    def test_linguistic_types_and_vocabulary(self, sample_doc):
        words = sample_doc.get_linguistic_type("words")
        assert words.constraints == "Time_Subdivision"
        assert words.controlled_vocabulary == "pos"
        assert sample_doc.get_linguistic_type("translation").time_alignable is False
        cv = sample_doc.controlled_vocabularies[0]
        assert cv.cv_id == "pos"
        assert cv.description == "Parts of speech"
        assert cv.entries[0].value == "INTJ"
        assert cv.entries[0].cve_id == "cveid1"

    def test_unknown_elements_are_kept(self, sample_doc):
        assert [e.tag for e in sample_doc.extra_elements] == ["EXTERNAL_REF"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_eaf(str(tmp_path / "missing.eaf"))

    def test_malformed_xml(self, tmp_path):
        path = tmp_path / "broken.eaf"
        path.write_text("<ANNOTATION_DOCUMENT><TIER>", encoding="utf-8")
        with pytest.raises(EafParseError, match="Malformed XML"):
            read_eaf(str(path))

    def test_wrong_root_element(self):
        with pytest.raises(EafParseError, match="root element"):
            eaf_from_string("<TextGrid/>")

    def test_missing_time_slot_reference(self, sample_eaf_text):
        broken = sample_eaf_text.replace('TIME_SLOT_REF2="ts7"', 'TIME_SLOT_REF2="ts99"')
        with pytest.raises(EafParseError, match="ts99"):
            eaf_from_string(broken)

    def test_missing_annotation_reference(self, sample_eaf_text):
        broken = sample_eaf_text.replace('ANNOTATION_REF="a2"', 'ANNOTATION_REF="a42"')
        with pytest.raises(EafParseError, match="a42"):
            eaf_from_string(broken)

    def test_missing_parent_tier(self, sample_eaf_text):
        broken = sample_eaf_text.replace('PARENT_REF="utterance" TIER_ID="words"', 'PARENT_REF="nope" TIER_ID="words"')
        with pytest.raises(EafParseError, match="nope"):
            eaf_from_string(broken)

    def test_non_integer_time_value(self, sample_eaf_text):
        broken = sample_eaf_text.replace('TIME_VALUE="4200"', 'TIME_VALUE="4.2s"')
        with pytest.raises(EafParseError, match="TIME_VALUE"):
            eaf_from_string(broken)


class TestWriteEaf:
    def test_round_trip_preserves_annotations_and_time_slots(self, sample_doc, tmp_path):
        out = tmp_path / "copy.eaf"
        write_eaf(sample_doc, str(out))
        again = read_eaf(str(out))

        assert again.tier_ids() == sample_doc.tier_ids()
        for tier in sample_doc.tiers:
            other = again.require_tier(tier.tier_id)
            assert [(a.id, a.value, a.ts_ref1, a.ts_ref2, a.ref_id) for a in other.annotations] == \
                   [(a.id, a.value, a.ts_ref1, a.ts_ref2, a.ref_id) for a in tier.annotations]
        assert again.time_slots == sample_doc.time_slots
        assert again.header.media_descriptors == sample_doc.header.media_descriptors
        assert again.controlled_vocabularies == sample_doc.controlled_vocabularies
        assert again.linguistic_types == sample_doc.linguistic_types
        assert [e.tag for e in again.extra_elements] == ["EXTERNAL_REF"]

    def test_schema_location_and_declaration(self, sample_doc):
        text = eaf_to_string(sample_doc)
        assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        root = ET.fromstring(text.split("\n", 1)[1])
        schema = root.get("{http://www.w3.org/2001/XMLSchema-instance}noNamespaceSchemaLocation")
        assert schema == "http://www.mpi.nl/tools/elan/EAFv3.0.xsd"

    def test_element_order_follows_schema(self, sample_doc):
        root = ET.fromstring(eaf_to_string(sample_doc).split("\n", 1)[1])
        tags = []
        for child in root:
            if not tags or tags[-1] != child.tag:
                tags.append(child.tag)
        assert tags == [
            "HEADER", "TIME_ORDER", "TIER", "LINGUISTIC_TYPE", "LOCALE", "LANGUAGE",
            "CONSTRAINT", "CONTROLLED_VOCABULARY", "EXTERNAL_REF",
        ]

    def test_last_used_annotation_id_is_updated(self):
        doc = EafDocument.new()
        doc.add_tier("main")
        doc.add_alignable("main", 0, 100, "one")
        doc.add_alignable("main", 100, 200, "two")
        eaf_to_string(doc)
        assert doc.header.get_property("lastUsedAnnotationId") == "2"

    def test_refuses_to_overwrite(self, sample_doc, sample_eaf):
        with pytest.raises(FileSystemError, match="already exists"):
            write_eaf(sample_doc, sample_eaf)

    def test_overwrite(self, sample_doc, sample_eaf):
        sample_doc.require_tier("utterance").annotations[0].value = "changed"
        write_eaf(sample_doc, sample_eaf, overwrite=True)
        assert read_eaf(sample_eaf).require_tier("utterance").values()[0] == "changed"

    def test_empty_annotation_value_round_trip(self, tmp_path):
        doc = EafDocument.new()
        doc.add_tier("main")
        doc.add_alignable("main", 0, 100, "")
        out = tmp_path / "empty_value.eaf"
        write_eaf(doc, str(out))
        assert read_eaf(str(out)).require_tier("main").values() == [""]

    def test_special_characters_are_escaped(self, tmp_path):
        doc = EafDocument.new()
        doc.add_tier("main")
        doc.add_alignable("main", 0, 100, 'a < b & "c" ñ')
        out = tmp_path / "escaped.eaf"
        write_eaf(doc, str(out))
        assert read_eaf(str(out)).require_tier("main").values() == ['a < b & "c" ñ']
