"""Tests for path, time and file helpers."""

import os

import pytest

from eafutil.exceptions import FileSystemError
from eafutil.utils import (
    append_to_stem,
    ensure_dir_exists,
    ensure_writable,
    find_files,
    format_ms,
    parse_timestamp,
    path_to_file_url,
    require_dir,
    require_file,
    seconds_to_ms,
    url_to_path,
)


class TestTime:
    @pytest.mark.parametrize("seconds, expected", [
        (0.0, 0),
        (1.5, 1500),
        (1.0625, 1063),
        (3.2545, 3255),
        (-1.0625, -1063),
    ])
    def test_seconds_to_ms(self, seconds, expected):
        assert seconds_to_ms(seconds) == expected

    def test_format_ms(self):
        assert format_ms(3723004) == "01:02:03.004"
        assert format_ms(0) == "00:00:00.000"
        assert format_ms(None) == ""

    @pytest.mark.parametrize("value, expected", [
        ("1500", 1500),
        ("00:00:01", 1000),
        ("01:02:03.5", 3723500),
        ("00:00:00.1234", 123),
        (" 00:01:00.250 ", 60250),
    ])
    def test_parse_timestamp(self, value, expected):
        assert parse_timestamp(value) == expected

    @pytest.mark.parametrize("value", ["", "1.5", "-100", "01:02", "aa:00:00", "00:00:01.x"])
    def test_parse_timestamp_invalid(self, value):
        with pytest.raises(ValueError):
            parse_timestamp(value)


class TestPaths:
    def test_append_to_stem(self):
        assert append_to_stem("dir/file.eaf", "ADDMEDIA") == "dir/file_ADDMEDIA.eaf"
        assert append_to_stem("dir/file.eaf", "1500", ".csv") == "dir/file_1500.csv"

    def test_file_urls(self, tmp_path):
        path = str(tmp_path / "my file.wav")
        url = path_to_file_url(path)
        assert url.startswith("file:///")
        assert url_to_path(url) == path
        assert url_to_path("file:///tmp/a%20b.wav") == "/tmp/a b.wav"
        assert url_to_path("file:./rel.wav") == "./rel.wav"
        assert url_to_path("./rel.wav") == "./rel.wav"


class TestFiles:
    def test_find_files(self, tmp_path):
        (tmp_path / "sub").mkdir()
        (tmp_path / ".hidden").mkdir()
        for name in ("b.eaf", "sub/a.EAF", "._b.eaf", ".hidden/c.eaf", "notes.txt"):
            (tmp_path / name).write_text("", encoding="utf-8")
        found = find_files(str(tmp_path), ".eaf")
        assert found == sorted([str(tmp_path / "b.eaf"), str(tmp_path / "sub" / "a.EAF")])

    def test_ensure_writable(self, tmp_path):
        path = tmp_path / "out.eaf"
        ensure_writable(str(path), overwrite=False)
        path.write_text("", encoding="utf-8")
        with pytest.raises(FileSystemError, match="--overwrite"):
            ensure_writable(str(path), overwrite=False)
        ensure_writable(str(path), overwrite=True)

    def test_ensure_dir_exists(self, tmp_path):
        target = tmp_path / "a" / "b"
        ensure_dir_exists(str(target))
        assert target.is_dir()
        afile = tmp_path / "file"
        afile.write_text("", encoding="utf-8")
        with pytest.raises(FileSystemError):
            ensure_dir_exists(str(afile))
        with pytest.raises(ValueError):
            ensure_dir_exists("")

    def test_require_file_and_dir(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            require_file(str(tmp_path / "missing"))
        with pytest.raises(FileSystemError):
            require_file(str(tmp_path))
        with pytest.raises(FileNotFoundError):
            require_dir(str(tmp_path / "missing"))
        afile = tmp_path / "file"
        afile.write_text("", encoding="utf-8")
        with pytest.raises(FileSystemError):
            require_dir(str(afile))
        require_dir(str(tmp_path))
        assert os.path.isfile(str(afile))
