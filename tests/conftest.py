import sqlite3
from io import BytesIO
from types import SimpleNamespace

import numpy as np
import pytest
from PIL import Image

from casket.database.schema import init_schema
from casket.database.ops import CatalogStore
from casket.exceptions import ConversionError
from casket.models import CatalogConfig
from casket.thumbnails import strategies


def jpeg_bytes(size=(64, 48), color=(200, 30, 30)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return buf.getvalue()


def make_jpeg(path, size=(64, 48), color=(200, 30, 30), date_taken=None):
    """Writes a JPEG, optionally with an EXIF DateTime tag."""
    img = Image.new("RGB", size, color)
    kwargs = {}
    if date_taken:
        exif = Image.Exif()
        exif[0x0132] = date_taken  # DateTime
        kwargs["exif"] = exif
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path, format="JPEG", **kwargs)
    return path


def make_tiff_raw(path, size=(80, 60), date_taken=None):
    """A TIFF container with a RAW extension; exifread reads it like a NEF/DNG."""
    img = Image.new("RGB", size, (10, 120, 10))
    tiffinfo = {306: date_taken} if date_taken else {}
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path, format="TIFF", tiffinfo=tiffinfo)
    return path


@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:", isolation_level=None)
    init_schema(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def store(conn):
    return CatalogStore(conn)


@pytest.fixture
def catalog(tmp_path):
    cat = CatalogConfig(
        name="test",
        data_path=tmp_path / "archive",
        thumbnail_path=tmp_path / "thumbs",
    )
    cat.data_path.mkdir()
    cat.thumbnail_path.mkdir()
    return cat


class FakeConverter:
    """Records calls instead of shelling out to sips/ImageMagick."""
    name = "fake"

    def __init__(self, data=None, fail=False):
        self.data = data if data is not None else jpeg_bytes((120, 90))
        self.fail = fail
        self.calls = []

    def to_jpeg(self, path):
        self.calls.append(path)
        if self.fail:
            raise ConversionError(f"fake conversion failed for {path}")
        return self.data


@pytest.fixture
def converter():
    return FakeConverter()


class FakeRawFile:
    def __init__(self, ctl):
        self.ctl = ctl

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def postprocess(self, use_camera_wb=True, output_bps=8):
        self.ctl.calls.append(f"postprocess_{output_bps}")
        if output_bps in self.ctl.fail_bps:
            raise RuntimeError(f"{output_bps}-bit develop failed")
        h, w = self.ctl.size[1], self.ctl.size[0]
        if output_bps == 16:
            return np.full((h, w, 3), 0x8000, dtype=np.uint16)
        return np.full((h, w, 3), 128, dtype=np.uint8)

    def extract_thumb(self):
        self.ctl.calls.append("extract_thumb")
        if self.ctl.fail_thumb:
            raise RuntimeError("no embedded preview")
        return SimpleNamespace(format=self.ctl.ThumbFormat.JPEG, data=jpeg_bytes((160, 120)))


class FakeRawpy:
    """Stands in for the rawpy module; each decode path can be made to fail."""
    ThumbFormat = SimpleNamespace(JPEG="jpeg", BITMAP="bitmap")

    def __init__(self):
        self.calls = []
        self.fail_bps = set()
        self.fail_thumb = False
        self.size = (400, 300)

    def imread(self, path):
        self.calls.append("imread")
        return FakeRawFile(self)


@pytest.fixture
def fake_rawpy(monkeypatch):
    fake = FakeRawpy()
    monkeypatch.setattr(strategies, "rawpy", fake)
    return fake


class FakeCapture:
    def __init__(self, ctl, path):
        self.ctl = ctl
        self.path = path
        self.released = False

    def isOpened(self):
        return self.ctl.opened

    def get(self, prop):
        if prop == self.ctl.CAP_PROP_FPS:
            return self.ctl.fps
        if prop == self.ctl.CAP_PROP_FRAME_COUNT:
            return self.ctl.frame_count
        return 0.0

    def set(self, prop, value):
        self.ctl.seeks.append((prop, value))
        return True

    def read(self):
        if not self.ctl.frames_ok:
            return False, None
        h, w = self.ctl.size[1], self.ctl.size[0]
        frame = np.zeros((h, w, 3), dtype=np.uint8)
        frame[..., 0] = 255  # blue in BGR
        return True, frame

    def release(self):
        self.released = True
        self.ctl.released += 1


class FakeCv2:
    CAP_PROP_POS_MSEC = 0
    CAP_PROP_POS_FRAMES = 1
    CAP_PROP_FPS = 5
    CAP_PROP_FRAME_COUNT = 7
    COLOR_BGR2RGB = 4

    def __init__(self):
        self.opened = True
        self.frames_ok = True
        self.fps = 30.0
        self.frame_count = 300.0
        self.size = (640, 360)
        self.seeks = []
        self.released = 0

    def VideoCapture(self, path):
        return FakeCapture(self, path)

    def cvtColor(self, frame, code):
        return np.ascontiguousarray(frame[..., ::-1])


@pytest.fixture
def fake_cv2(monkeypatch):
    fake = FakeCv2()
    monkeypatch.setattr(strategies, "cv2", fake)
    return fake
