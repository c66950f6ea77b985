"""
External image conversion.

HEIC/HEIF files (and DNGs that rawpy cannot read) are handed to an
OS-provided tool that turns them into JPEG bytes. The tool sits behind the
small ImageConverter interface so tests can swap in a fake.
"""
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol

from .. import config
from ..exceptions import ConversionError


class ImageConverter(Protocol):
    name: str

    def to_jpeg(self, path: Path) -> bytes:
        """Returns JPEG bytes for path or raises ConversionError."""
        ...


class _SubprocessConverter:
    name = "external"

    def __init__(self, executable: str, timeout: float = config.CONVERTER_TIMEOUT_SEC):
        self.executable = executable
        self.timeout = timeout

    def _command(self, src: Path, dest: Path) -> List[str]:
        raise NotImplementedError

    def to_jpeg(self, path: Path) -> bytes:
        with tempfile.TemporaryDirectory(prefix="casket-") as tmp:
            out = Path(tmp) / "converted.jpg"
            cmd = self._command(path, out)
            logging.debug(f"Running {' '.join(cmd)}")
            try:
                subprocess.run(cmd, check=True, capture_output=True, timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                raise ConversionError(f"{self.name} timed out after {self.timeout}s on {path}") from e
            except subprocess.CalledProcessError as e:
                stderr = (e.stderr or b"").decode("utf-8", "replace").strip()
                raise ConversionError(f"{self.name} failed on {path}: {stderr or e}") from e
            except OSError as e:
                raise ConversionError(f"Could not run {self.executable}: {e}") from e

            if not out.exists() or out.stat().st_size == 0:
                raise ConversionError(f"{self.name} produced no output for {path}")
            return out.read_bytes()


class SipsConverter(_SubprocessConverter):
    """macOS 'sips' (Scriptable Image Processing System)."""
    name = "sips"

    def __init__(self, executable: str = "sips", timeout: float = config.CONVERTER_TIMEOUT_SEC):
        super().__init__(executable, timeout)

    def _command(self, src: Path, dest: Path) -> List[str]:
        return [self.executable, "-s", "format", "jpeg", str(src), "--out", str(dest)]


class MagickConverter(_SubprocessConverter):
    """ImageMagick ('magick' on v7, 'convert' on v6)."""
    name = "imagemagick"

    def __init__(self, executable: str = "magick", timeout: float = config.CONVERTER_TIMEOUT_SEC):
        super().__init__(executable, timeout)

    def _command(self, src: Path, dest: Path) -> List[str]:
        # [0] keeps only the primary image of multi-image containers
        return [self.executable, f"{src}[0]", f"jpeg:{dest}"]


class UnavailableConverter:
    """Stand-in when no conversion tool is installed; every call fails per-file."""
    name = "none"

    def to_jpeg(self, path: Path) -> bytes:
        raise ConversionError(f"No image conversion utility available for {path}")


def default_converter(timeout: float = config.CONVERTER_TIMEOUT_SEC) -> ImageConverter:
    """Picks the first conversion tool found on PATH."""
    sips = shutil.which("sips")
    if sips:
        return SipsConverter(sips, timeout)
    for name in ("magick", "convert"):
        exe: Optional[str] = shutil.which(name)
        if exe:
            return MagickConverter(exe, timeout)
    logging.warning("No image conversion utility (sips/ImageMagick) found; HEIC files will be skipped.")
    return UnavailableConverter()
