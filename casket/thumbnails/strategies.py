"""
Decode strategies: each turns a source file into a PIL image, or raises.

A strategy knows nothing about resizing or encoding; the engine tries the
strategies registered for a file kind in order and keeps the first image
that comes back.
"""
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, Optional

import cv2
import numpy as np
import rawpy
from PIL import Image
from psd_tools import PSDImage

from .. import config
from ..exceptions import ConversionError
from .converter import ImageConverter

DecodeFn = Callable[[Path, ImageConverter], Image.Image]


@dataclass(frozen=True)
class DecodeStrategy:
    name: str
    decode: DecodeFn
    # Optional filter on the source path (e.g. DNG-only fallbacks)
    applies_to: Optional[Callable[[Path], bool]] = None

    def applies(self, path: Path) -> bool:
        return self.applies_to is None or self.applies_to(path)


def _image_from_bytes(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img


# --- RAW ---

def decode_raw_8bit(path: Path, converter: ImageConverter) -> Image.Image:
    with rawpy.imread(str(path)) as raw:
        rgb = raw.postprocess(use_camera_wb=True, output_bps=8)
    return Image.fromarray(rgb)


def decode_raw_16bit(path: Path, converter: ImageConverter) -> Image.Image:
    """Develops at 16 bits per sample and down-converts to 8 bits."""
    with rawpy.imread(str(path)) as raw:
        rgb16 = raw.postprocess(use_camera_wb=True, output_bps=16)
    rgb8 = (np.asarray(rgb16, dtype=np.uint16) >> 8).astype(np.uint8)
    return Image.fromarray(rgb8)


def decode_raw_embedded_preview(path: Path, converter: ImageConverter) -> Image.Image:
    """Uses the preview the camera stored inside the RAW container."""
    with rawpy.imread(str(path)) as raw:
        thumb = raw.extract_thumb()
    if thumb.format == rawpy.ThumbFormat.JPEG:
        return _image_from_bytes(thumb.data)
    if thumb.format == rawpy.ThumbFormat.BITMAP:
        return Image.fromarray(thumb.data)
    raise ValueError(f"Unsupported embedded preview format: {thumb.format}")


def decode_external(path: Path, converter: ImageConverter) -> Image.Image:
    data = converter.to_jpeg(path)
    try:
        return _image_from_bytes(data)
    except Exception as e:
        raise ConversionError(f"{converter.name} returned unreadable JPEG for {path}: {e}") from e


def is_external_raw(path: Path) -> bool:
    return path.suffix.lower() in config.EXTERNAL_RAW_EXTS


# --- General raster ---

def decode_pillow(path: Path, converter: ImageConverter) -> Image.Image:
    if path.suffix.lower() in config.PSD_EXTS:
        composite = PSDImage.open(path).composite()
        if composite is None:
            raise ValueError(f"PSD has no renderable composite: {path}")
        return composite
    img = Image.open(path)
    img.load()
    return img


# --- Video ---

def decode_video_frame(path: Path, converter: ImageConverter) -> Image.Image:
    """
    Grabs the frame at a fixed offset (clamped to the middle of short clips),
    falling back to the first frame.
    """
    cap = cv2.VideoCapture(str(path))
    try:
        if not cap.isOpened():
            raise ValueError(f"Cannot open video: {path}")

        fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
        frames = float(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0)
        duration = frames / fps if fps > 0 else 0.0
        offset = min(config.VIDEO_FRAME_OFFSET_SEC, duration / 2.0)

        ok, frame = False, None
        if offset > 0:
            cap.set(cv2.CAP_PROP_POS_MSEC, offset * 1000.0)
            ok, frame = cap.read()
        if not ok or frame is None:
            cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            ok, frame = cap.read()
        if not ok or frame is None:
            raise ValueError(f"No decodable frame in {path}")

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return Image.fromarray(rgb)
    finally:
        cap.release()


RAW_8BIT = DecodeStrategy("raw_8bit", decode_raw_8bit)
RAW_16BIT = DecodeStrategy("raw_16bit", decode_raw_16bit)
RAW_EMBEDDED_PREVIEW = DecodeStrategy("raw_embedded_preview", decode_raw_embedded_preview)
RAW_EXTERNAL = DecodeStrategy("external_convert", decode_external, applies_to=is_external_raw)
EXTERNAL = DecodeStrategy("external_convert", decode_external)
PILLOW = DecodeStrategy("pillow", decode_pillow)
VIDEO_FRAME = DecodeStrategy("video_frame", decode_video_frame)


def default_registry() -> dict:
    """Ordered fallback chains keyed by file kind."""
    return {
        'raw': [RAW_8BIT, RAW_16BIT, RAW_EMBEDDED_PREVIEW, RAW_EXTERNAL],
        'heic': [EXTERNAL],
        'image': [PILLOW],
        'video': [VIDEO_FRAME],
    }
