import os
from datetime import datetime, timezone

import pytest

import casket.metadata.extract as extract_module
from casket.metadata.extract import MetadataExtractor
from conftest import make_jpeg, make_tiff_raw


# Mock MediaInfo class structure
class MockTrack:
    def __init__(self, **kwargs):
        self.track_type = "General"
        for k, v in kwargs.items():
            setattr(self, k, v)


class MockMediaInfo:
    def __init__(self, tracks):
        self.tracks = tracks

    @classmethod
    def parse(cls, path):
        return cls([MockTrack(
            duration=5000,
            recorded_date="2023-01-01 12:00:00",
            device_model="TestCam"
        )])


def _set_mtime(path, dt):
    ts = dt.timestamp()
    os.utime(path, (ts, ts))


def _utc_to_local(dt):
    return dt.replace(tzinfo=timezone.utc).astimezone().replace(tzinfo=None)


def test_exif_date_taken(tmp_path):
    img = make_jpeg(tmp_path / "a.jpg", date_taken="2021:07:04 10:30:00")
    _set_mtime(img, datetime(2024, 1, 1))

    meta = MetadataExtractor().extract(img, "image")

    assert meta.capture_date == datetime(2021, 7, 4, 10, 30)
    assert meta.date_source == "exif"


def test_raw_date_from_embedded_metadata(tmp_path):
    raw = make_tiff_raw(tmp_path / "DSC_0001.NEF", date_taken="2019:12:31 23:59:59")
    _set_mtime(raw, datetime(2024, 1, 1))

    meta = MetadataExtractor().extract(raw, "raw")

    assert meta.capture_date == datetime(2019, 12, 31, 23, 59, 59)
    assert meta.date_source == "exif"


def test_falls_back_to_mtime_without_exif(tmp_path):
    img = make_jpeg(tmp_path / "plain.jpg")
    _set_mtime(img, datetime(2020, 5, 6, 7, 8, 9))

    meta = MetadataExtractor().extract(img, "image")

    assert meta.capture_date == datetime(2020, 5, 6, 7, 8, 9)
    assert meta.date_source == "mtime"


def test_unparsable_exif_date_falls_back(tmp_path):
    img = make_jpeg(tmp_path / "zero.jpg", date_taken="0000:00:00 00:00:00")
    _set_mtime(img, datetime(2020, 5, 6))

    meta = MetadataExtractor().extract(img, "image")

    assert meta.capture_date == datetime(2020, 5, 6)
    assert meta.date_source == "mtime"


def test_corrupt_file_never_raises(tmp_path):
    junk = tmp_path / "junk.heic"
    junk.write_bytes(b"\x00\x01garbage")
    _set_mtime(junk, datetime(2018, 2, 3))

    meta = MetadataExtractor().extract(junk, "heic")

    assert meta.capture_date == datetime(2018, 2, 3)
    assert meta.date_source == "mtime"


def test_exifread_crash_degrades(tmp_path, monkeypatch):
    img = make_jpeg(tmp_path / "a.jpg", date_taken="2021:07:04 10:30:00")
    _set_mtime(img, datetime(2020, 1, 1))

    def boom(*args, **kwargs):
        raise RuntimeError("parser blew up")

    monkeypatch.setattr(extract_module.exifread, "process_file", boom)
    meta = MetadataExtractor().extract(img, "image")

    assert meta.date_source == "mtime"


def test_orientation_is_recorded(tmp_path, monkeypatch):
    class Tag:
        def __init__(self, values):
            self.values = values

        def __str__(self):
            return str(self.values[0])

    tags = {
        "EXIF DateTimeOriginal": "2022:02:02 02:02:02",
        "Image Orientation": Tag([6]),
        "Image Make": "Canon",
        "Image Model": "Canon EOS R5",
    }
    monkeypatch.setattr(extract_module.exifread, "process_file", lambda f, details=False: tags)
    img = make_jpeg(tmp_path / "rot.jpg")

    meta = MetadataExtractor().extract(img, "image")

    assert meta.orientation == 6
    assert meta.camera_make == "Canon"
    assert meta.camera_model == "Canon EOS R5"
    assert meta.capture_date == datetime(2022, 2, 2, 2, 2, 2)


def test_video_metadata_extraction(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", MockMediaInfo)

    vid = tmp_path / "test.mp4"
    vid.touch()

    meta = MetadataExtractor().extract(vid, "video")

    assert meta.capture_date == datetime(2023, 1, 1, 12, 0, 0)
    assert meta.duration_sec == 5.0
    assert meta.camera_model == "TestCam"
    assert meta.date_source == "mediainfo"


def test_video_without_tools_uses_mtime(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", None)

    def no_exiftool(*args, **kwargs):
        raise FileNotFoundError("exiftool")

    monkeypatch.setattr(extract_module.subprocess, "check_output", no_exiftool)
    vid = tmp_path / "clip.mov"
    vid.touch()
    _set_mtime(vid, datetime(2017, 3, 4))

    meta = MetadataExtractor().extract(vid, "video")

    assert meta.capture_date == datetime(2017, 3, 4)
    assert meta.date_source == "mtime"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2023-01-01T12:00:00", datetime(2023, 1, 1, 12)),
        ("UTC 2023-01-01 12:00:00", _utc_to_local(datetime(2023, 1, 1, 12))),
        ("2023-01-01T12:00:00+00:00", _utc_to_local(datetime(2023, 1, 1, 12))),
        ("2023:01:01 12:00:00", datetime(2023, 1, 1, 12)),
        ("2023:01:01 12:00:00.123+02:00", datetime(2023, 1, 1, 12)),
        ("not a date", None),
    ],
)
def test_parse_flexible_date(raw, expected):
    assert MetadataExtractor()._parse_flexible_date(raw) == expected


def test_mediainfo_utc_dates_become_local(monkeypatch, tmp_path):
    class UtcMediaInfo(MockMediaInfo):
        @classmethod
        def parse(cls, path):
            return cls([MockTrack(duration=2000, encoded_date="UTC 2021-12-31 23:30:00")])

    monkeypatch.setattr(extract_module, "MediaInfo", UtcMediaInfo)
    vid = tmp_path / "late.mov"
    vid.touch()

    meta = MetadataExtractor().extract(vid, "video")

    assert meta.capture_date == _utc_to_local(datetime(2021, 12, 31, 23, 30))
    assert meta.date_source == "mediainfo"


def test_exiftool_consulted_when_mediainfo_has_no_date(monkeypatch, tmp_path):
    class DurationOnlyMediaInfo(MockMediaInfo):
        @classmethod
        def parse(cls, path):
            return cls([MockTrack(duration=7000)])

    monkeypatch.setattr(extract_module, "MediaInfo", DurationOnlyMediaInfo)
    monkeypatch.setattr(
        extract_module.subprocess, "check_output",
        lambda *args, **kwargs: '[{"CreateDate": "2019:06:01 08:15:00", "Model": "GoPro"}]',
    )
    vid = tmp_path / "clip.mp4"
    vid.touch()
    _set_mtime(vid, datetime(2024, 1, 1))

    meta = MetadataExtractor().extract(vid, "video")

    assert meta.capture_date == datetime(2019, 6, 1, 8, 15)
    assert meta.date_source == "exiftool"
    assert meta.camera_model == "GoPro"
    assert meta.duration_sec == 7.0


def test_duration_kept_when_no_tool_finds_a_date(monkeypatch, tmp_path):
    class DurationOnlyMediaInfo(MockMediaInfo):
        @classmethod
        def parse(cls, path):
            return cls([MockTrack(duration=3000)])

    def no_exiftool(*args, **kwargs):
        raise FileNotFoundError("exiftool")

    monkeypatch.setattr(extract_module, "MediaInfo", DurationOnlyMediaInfo)
    monkeypatch.setattr(extract_module.subprocess, "check_output", no_exiftool)
    vid = tmp_path / "clip.mp4"
    vid.touch()
    _set_mtime(vid, datetime(2017, 3, 4))

    meta = MetadataExtractor().extract(vid, "video")

    assert meta.capture_date == datetime(2017, 3, 4)
    assert meta.date_source == "mtime"
    assert meta.duration_sec == 3.0
