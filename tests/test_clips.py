"""Tests for clip naming, manifests, the ClipGenerator and the ffmpeg wrapper."""

import json
import os

import ffmpeg
import pytest

from eafutil import media_extractor as media_extractor_module
from eafutil.clip_generator import ClipGenerator
from eafutil.clips import Clip, ClipManifest, ClipNaming, clip_filename, resolve_media_paths
from eafutil.eaf_io import read_eaf
from eafutil.exceptions import (
    AnnotationNotFoundError,
    ClipExtractionError,
    EafUtilError,
    FFmpegNotFoundError,
    FileSystemError,
    MediaError,
    TranscriptParseError,
)
from eafutil.media_extractor import MediaExtractor
from eafutil.models import Annotation


class TestClipFilename:
    def test_default_name(self):
        annotation = Annotation("a1", "Hello")
        assert clip_filename("/m/rec.wav", 1, "utt", annotation, 0, 10, ClipNaming()) == "rec_annotation_0001.wav"

    def test_all_parts(self):
        annotation = Annotation("a1", "Hello, there world!")
        naming = ClipNaming(tier_id=True, annotation_id=True, value=True, time=True)
        name = clip_filename("/m/rec.mp4", 12, "utt/x", annotation, 1000, 2500, naming)
        assert name == "rec_annotation_0012_utt_x_a1_Hello_there_world_1000-2500.mp4"

    def test_value_length_and_ascii(self):
        annotation = Annotation("a1", "Grüße aus der Ferne")
        naming = ClipNaming(value=True, max_length=5, ascii_only=True)
        assert clip_filename("rec.wav", 1, "t", annotation, 0, 1, naming) == "rec_annotation_0001_Gr__e.wav"


class TestClipManifest:
    def test_write_and_read(self, tmp_path):
        manifest = ClipManifest(["/media/talk.wav"], [Clip(["/c/talk_annotation_0001.wav"], 1000, 2500)])
        path = manifest.write(str(tmp_path / "utt.json"))
        with open(path, encoding="utf-8") as f:
            assert json.load(f) == {
                "original_media": ["/media/talk.wav"],
                "clips": [{"media": ["/c/talk_annotation_0001.wav"], "start": 1000, "end": 2500}],
            }
        assert ClipManifest.read(path) == manifest
        with pytest.raises(FileSystemError):
            manifest.write(path)

    def test_find_by_stem_ignores_extensions(self):
        clip = Clip(["/c/talk_annotation_0001.wav"], 1000, 2500)
        manifest = ClipManifest(clips=[clip])
        assert manifest.find_by_stem("talk_annotation_0001.wav.json") is clip
        assert manifest.find_by_stem("talk_annotation_0001.json") is clip
        assert manifest.find_by_stem("talk_annotation_0001.wav.en.json") is clip
        assert manifest.find_by_stem("talk_annotation_0002.json") is None

    def test_find_by_stem_keeps_dots_in_media_names(self):
        first = Clip(["/c/interview.v2_annotation_0001.wav"], 1000, 2000)
        second = Clip(["/c/interview.v2_annotation_0002.wav"], 60000, 61000)
        manifest = ClipManifest(clips=[first, second])
        assert manifest.find_by_stem("/t/interview.v2_annotation_0002.json") is second
        assert manifest.find_by_stem("interview.v2_annotation_0001.wav.json") is first
        assert manifest.find_by_stem("interview.json") is None

    def test_find_by_stem_ambiguous(self):
        manifest = ClipManifest(clips=[Clip(["/a/take.wav"], 0, 10), Clip(["/b/take.mp4"], 20, 30)])
        with pytest.raises(TranscriptParseError, match="matches 2 clips"):
            manifest.find_by_stem("take.json")

    def test_longest_and_shortest(self):
        manifest = ClipManifest(clips=[Clip(["a"], 0, 100), Clip(["b"], 0, 300), Clip(["c"], 50, 60)])
        assert manifest.longest().media == ["b"]
        assert manifest.shortest().media == ["c"]
        assert ClipManifest().longest() is None

    def test_invalid_manifest(self, tmp_path):
        with pytest.raises(TranscriptParseError):
            ClipManifest.from_dict({"clips": [{"media": ["x"]}]})
        path = tmp_path / "broken.json"
        path.write_text("[", encoding="utf-8")
        with pytest.raises(TranscriptParseError, match="Malformed JSON"):
            ClipManifest.read(str(path))
        with pytest.raises(FileNotFoundError):
            ClipManifest.read(str(tmp_path / "missing.json"))

    def test_manifest_not_utf8(self, tmp_path):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"clips": [], "original_media": ["\xe9"]}')
        with pytest.raises(TranscriptParseError, match="Malformed JSON"):
            ClipManifest.read(str(path))


class TestResolveMediaPaths:
    def test_absolute_path(self, linked_eaf):
        eaf_path, media = linked_eaf
        assert resolve_media_paths(read_eaf(eaf_path), eaf_path) == [media]

    def test_relative_fallback(self, sample_doc, sample_eaf, tmp_path):
        (tmp_path / "recording.wav").write_bytes(b"RIFF")
        assert resolve_media_paths(sample_doc, sample_eaf) == [str(tmp_path / "recording.wav")]

    def test_missing_media(self, sample_doc, sample_eaf):
        with pytest.raises(MediaError, match="recording.wav"):
            resolve_media_paths(sample_doc, sample_eaf)
        assert resolve_media_paths(sample_doc, sample_eaf, dryrun=True) == ["/nonexistent/dir/recording.wav"]


class TestGenerateClips:
    def test_clips_for_one_tier(self, linked_eaf, fake_extractor, tmp_path):
        eaf_path, media = linked_eaf
        report = ClipGenerator(fake_extractor).generate(eaf_path, tier_ids=["utterance"])

        tier_dir = tmp_path / "linked_CLIPS" / "utterance"
        assert fake_extractor.calls == [
            (media, 1000, 2500, str(tier_dir / "recording_annotation_0001.wav")),
            (media, 3000, 4200, str(tier_dir / "recording_annotation_0002.wav")),
        ]
        assert report.manifest_paths["utterance"] == str(tier_dir / "utterance.json")
        manifest = ClipManifest.read(str(tier_dir / "utterance.json"))
        assert manifest.original_media == [media]
        assert [(c.start, c.end) for c in manifest.clips] == [(1000, 2500), (3000, 4200)]
        assert report.longest().start == 1000
        assert report.shortest().start == 3000

    def test_referring_tier_uses_parent_times(self, linked_eaf, fake_extractor):
        eaf_path, _ = linked_eaf
        report = ClipGenerator(fake_extractor).generate(eaf_path, tier_ids=["translation"])
        assert [(c.start, c.end) for c in report.manifests["translation"].clips] == [(1000, 2500), (3000, 4200)]

    def test_unaligned_annotations_are_skipped(self, linked_eaf, fake_extractor):
        eaf_path, _ = linked_eaf
        report = ClipGenerator(fake_extractor).generate(eaf_path, tier_ids=["words"])
        assert report.skipped == 2
        assert report.manifests["words"].clips == []
        assert "words" not in report.manifest_paths

    def test_min_duration(self, linked_eaf, fake_extractor):
        eaf_path, _ = linked_eaf
        report = ClipGenerator(fake_extractor).generate(eaf_path, tier_ids=["utterance"], min_duration=1300)
        assert [c.start for c in report.all_clips()] == [1000]
        assert report.skipped == 1

    def test_single_annotation(self, linked_eaf, fake_extractor):
        eaf_path, _ = linked_eaf
        report = ClipGenerator(fake_extractor).generate(eaf_path, annotation_id="a2")
        assert list(report.manifests) == ["utterance"]
        assert os.path.basename(fake_extractor.calls[0][3]) == "recording_annotation_0002.wav"
        with pytest.raises(AnnotationNotFoundError):
            ClipGenerator(fake_extractor).generate(eaf_path, annotation_id="a99")

    def test_refuses_to_overwrite(self, linked_eaf, fake_extractor):
        eaf_path, _ = linked_eaf
        generator = ClipGenerator(fake_extractor)
        generator.generate(eaf_path, tier_ids=["utterance"])
        with pytest.raises(FileSystemError):
            generator.generate(eaf_path, tier_ids=["utterance"])
        generator.generate(eaf_path, tier_ids=["utterance"], overwrite=True)

    def test_dryrun_writes_nothing(self, sample_eaf, fake_extractor, tmp_path):
        report = ClipGenerator(fake_extractor).generate(sample_eaf, tier_ids=["utterance"], dryrun=True)
        assert report.dryrun
        assert len(report.manifests["utterance"].clips) == 2
        assert fake_extractor.calls == []
        assert not (tmp_path / "session_CLIPS").exists()

    def test_missing_media(self, sample_eaf, fake_extractor):
        with pytest.raises(MediaError):
            ClipGenerator(fake_extractor).generate(sample_eaf, tier_ids=["utterance"])

    def test_outdir(self, linked_eaf, fake_extractor, tmp_path):
        eaf_path, _ = linked_eaf
        outdir = tmp_path / "out"
        ClipGenerator(fake_extractor).generate(eaf_path, tier_ids=["utterance"], outdir=str(outdir))
        assert (outdir / "linked_CLIPS" / "utterance" / "utterance.json").is_file()


class TestFilter:
    def test_filter_window(self, linked_eaf, fake_extractor, tmp_path):
        eaf_path, _ = linked_eaf
        report = ClipGenerator(fake_extractor).filter(eaf_path, 900, 2600)
        assert report.output_path == str(tmp_path / "linked_900-2600.eaf")
        assert (report.annotations_in, report.annotations_out) == (6, 4)
        excerpt = read_eaf(report.output_path)
        assert excerpt.annotation_spans()["a1"] == (1000, 2500)
        assert fake_extractor.calls == []

    def test_filter_with_media(self, linked_eaf, fake_extractor, tmp_path):
        eaf_path, media = linked_eaf
        report = ClipGenerator(fake_extractor).filter(eaf_path, 900, 2600, process_media=True)
        clip = str(tmp_path / "recording_900-2600.wav")
        assert fake_extractor.calls == [(media, 900, 2600, clip)]
        assert report.media == [clip]
        excerpt = read_eaf(report.output_path)
        assert excerpt.annotation_spans()["a1"] == (100, 1600)
        descriptors = excerpt.header.media_descriptors
        assert len(descriptors) == 1
        assert descriptors[0].relative_media_url == "./recording_900-2600.wav"

    def test_filter_by_annotation(self, linked_eaf, fake_extractor, tmp_path):
        eaf_path, _ = linked_eaf
        report = ClipGenerator(fake_extractor).filter(eaf_path, tier_id="utterance", annotation_id="a2")
        assert report.output_path == str(tmp_path / "linked_3000-4200.eaf")
        with pytest.raises(AnnotationNotFoundError):
            ClipGenerator(fake_extractor).filter(eaf_path, tier_id="words", annotation_id="a2")

    def test_filter_by_unaligned_annotation(self, linked_eaf, fake_extractor, tmp_path):
        eaf_path, _ = linked_eaf
        with pytest.raises(EafUtilError, match="no time values"):
            ClipGenerator(fake_extractor).filter(eaf_path, tier_id="words", annotation_id="a5")
        assert not (tmp_path / "linked_1000-2500.eaf").exists()

    def test_invalid_window(self, linked_eaf, fake_extractor):
        eaf_path, _ = linked_eaf
        with pytest.raises(EafUtilError, match="before its end"):
            ClipGenerator(fake_extractor).filter(eaf_path, 2000, 1000)
        with pytest.raises(EafUtilError):
            ClipGenerator(fake_extractor).filter(eaf_path, 2000, None)


class _FailingStream:
    def __init__(self, error):
        self.error = error

    def overwrite_output(self):
        return self

    def run(self, **kwargs):
        raise self.error

class TestMediaExtractor:
    def test_check_available(self, monkeypatch):
        monkeypatch.setattr(media_extractor_module.shutil, "which", lambda cmd: None)
        with pytest.raises(FFmpegNotFoundError):
            MediaExtractor("no-such-ffmpeg").check_available()
        monkeypatch.setattr(media_extractor_module.shutil, "which", lambda cmd: f"/usr/bin/{cmd}")
        assert MediaExtractor().check_available() == "/usr/bin/ffmpeg"

    def test_extract_timespan_arguments(self, tmp_path, monkeypatch):
        media = tmp_path / "talk.wav"
        media.write_bytes(b"RIFF")
        out = tmp_path / "clips" / "clip.wav"
        extractor = MediaExtractor()
        streams = []
        monkeypatch.setattr(extractor, "_run", lambda stream, output_path: streams.append(stream))

        assert extractor.extract_timespan(str(media), 1500, 2500, str(out)) == str(out)
        args = ffmpeg.compile(streams[0])
        assert args[args.index("-ss") + 1] == "1.5"
        assert args[args.index("-t") + 1] == "1.0"
        assert args[-1] == str(out)
        assert out.parent.is_dir()

    def test_extract_timespan_checks(self, tmp_path):
        extractor = MediaExtractor()
        with pytest.raises(FileNotFoundError):
            extractor.extract_timespan(str(tmp_path / "missing.wav"), 0, 100, str(tmp_path / "out.wav"))
        media = tmp_path / "talk.wav"
        media.write_bytes(b"RIFF")
        with pytest.raises(ClipExtractionError, match="Invalid clip span"):
            extractor.extract_timespan(str(media), 100, 100, str(tmp_path / "out.wav"))
        existing = tmp_path / "exists.wav"
        existing.write_bytes(b"")
        with pytest.raises(FileSystemError):
            extractor.extract_timespan(str(media), 0, 100, str(existing))

    def test_ffmpeg_error_removes_partial_output(self, tmp_path):
        partial = tmp_path / "partial.wav"
        partial.write_bytes(b"half")
        with pytest.raises(ffmpeg.Error):
            MediaExtractor()._run(_FailingStream(ffmpeg.Error("ffmpeg", b"", b"boom")), str(partial))
        assert not partial.exists()

    def test_ffmpeg_error_becomes_clip_extraction_error(self, tmp_path, monkeypatch):
        media = tmp_path / "talk.wav"
        media.write_bytes(b"RIFF")
        extractor = MediaExtractor()

        def fail(stream, output_path):
            raise ffmpeg.Error("ffmpeg", b"", b"Invalid data found")

        monkeypatch.setattr(extractor, "_run", fail)
        with pytest.raises(ClipExtractionError, match="Invalid data found"):
            extractor.extract_timespan(str(media), 0, 100, str(tmp_path / "out.wav"))

    def test_missing_executable(self, tmp_path):
        with pytest.raises(FFmpegNotFoundError):
            MediaExtractor()._run(_FailingStream(FileNotFoundError("ffmpeg")), str(tmp_path / "out.wav"))
