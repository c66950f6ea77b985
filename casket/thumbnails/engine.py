import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image

from .. import config
from ..exceptions import ThumbnailError
from ..models import Thumbnail
from .converter import ImageConverter, default_converter
from .strategies import DecodeStrategy, default_registry


@dataclass(frozen=True)
class ThumbnailSettings:
    max_dimension: int = config.DEFAULT_MAX_DIMENSION
    quality_level: int = config.DEFAULT_QUALITY_LEVEL

    def __post_init__(self):
        if self.max_dimension < 1:
            raise ValueError(f"max_dimension must be positive, got {self.max_dimension}")
        if not config.MIN_QUALITY_LEVEL <= self.quality_level <= config.MAX_QUALITY_LEVEL:
            raise ValueError(
                f"quality_level must be between {config.MIN_QUALITY_LEVEL} and "
                f"{config.MAX_QUALITY_LEVEL}, got {self.quality_level}"
            )

    @property
    def jpeg_quality(self) -> int:
        return self.quality_level * 10


def compute_target_size(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Scales (width, height) so the longest edge fits max_dimension.
    Never upscales.
    """
    longest = max(width, height)
    if longest <= 0:
        raise ValueError(f"Invalid image size {width}x{height}")
    scale = min(1.0, max_dimension / longest)
    if scale == 1.0:
        return width, height
    return max(1, round(width * scale)), max(1, round(height * scale))


class ThumbnailEngine:
    """
    Builds a JPEG preview for a media file.

    Each file kind has an ordered chain of decode strategies; they are tried
    in turn and the first image that decodes wins. The image is then shrunk
    to fit max_dimension and encoded at the configured quality.
    Nothing is written to disk here.
    """

    def __init__(self,
                 settings: Optional[ThumbnailSettings] = None,
                 converter: Optional[ImageConverter] = None,
                 registry: Optional[Dict[str, List[DecodeStrategy]]] = None):
        self.settings = settings or ThumbnailSettings()
        self.converter = converter if converter is not None else default_converter()
        self.registry = registry if registry is not None else default_registry()

    def build(self, path: Path, kind: str) -> Thumbnail:
        img, strategy = self.decode(path, kind)
        try:
            return self.render(img, strategy)
        finally:
            img.close()

    def decode(self, path: Path, kind: str) -> Tuple[Image.Image, str]:
        """Runs the fallback chain for kind; raises ThumbnailError when it is exhausted."""
        attempts = []
        for strategy in self.registry.get(kind, []):
            if not strategy.applies(path):
                continue
            try:
                img = strategy.decode(path, self.converter)
            except Exception as e:
                logging.debug(f"{strategy.name} failed for {path}: {e}")
                attempts.append((strategy.name, str(e) or type(e).__name__))
                continue
            if attempts:
                logging.info(f"Decoded {path} with fallback '{strategy.name}' after {len(attempts)} failed attempt(s)")
            return img, strategy.name

        raise ThumbnailError(path, attempts)

    def render(self, img: Image.Image, strategy: str = "") -> Thumbnail:
        """Resizes and JPEG-encodes a decoded image."""
        src_w, src_h = img.size
        target = compute_target_size(src_w, src_h, self.settings.max_dimension)

        rgb = self._to_rgb(img)
        if target != rgb.size:
            rgb = rgb.resize(target, Image.Resampling.LANCZOS)

        buf = BytesIO()
        rgb.save(buf, format="JPEG", quality=self.settings.jpeg_quality)
        return Thumbnail(
            data=buf.getvalue(),
            width=rgb.width,
            height=rgb.height,
            source_width=src_w,
            source_height=src_h,
            strategy=strategy,
        )

    def _to_rgb(self, img: Image.Image) -> Image.Image:
        if img.mode == "RGB":
            return img
        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            # Flatten transparency onto white rather than black
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.getchannel("A"))
            return background
        if img.mode in ("I;16", "I;16B", "I;16L", "I"):
            # 16-bit greyscale: scale to 8 bits before converting
            return img.convert("I").point(lambda v: v * (1 / 256)).convert("L").convert("RGB")
        return img.convert("RGB")
