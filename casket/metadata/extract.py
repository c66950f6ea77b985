import json
import logging
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import exifread

from .. import config
from ..models import MediaMetadata

# Type hint 'Any' prevents Pylance from complaining about "None" having no attribute "parse"
MediaInfo: Any = None
try:
    from pymediainfo import MediaInfo
except ImportError:
    MediaInfo = None


class MetadataExtractor:
    """
    Derives a capture date and a few descriptive tags for a media file.

    Strategies:
      - Images, RAW and HEIC: 'exifread' (fast, Python-native).
      - Video: 'pymediainfo' -> falls back to 'exiftool'.
      - Anything else, or when no date was found: file modification time.

    extract() never raises; missing metadata degrades to the fallback.
    """

    def extract(self, path: Path, kind: str) -> MediaMetadata:
        data: Dict[str, Any] = {}
        source = None

        if kind == 'video':
            data, source = self.get_video_metadata(path)
        else:
            data = self.get_image_metadata(path)
            source = 'exif'

        dt = data.get('dt')
        if dt is None:
            dt = self._fallback_file_datetime(path)
            source = 'mtime'
            logging.debug(f"No embedded capture date for {path}, using mtime {dt}")

        return MediaMetadata(
            capture_date=dt,
            date_source=source,
            orientation=data.get('orientation'),
            camera_make=data.get('make'),
            camera_model=data.get('camera'),
            lens_model=data.get('lens'),
            duration_sec=data.get('duration'),
        )

    def get_image_metadata(self, path: Path) -> Dict[str, Any]:
        """
        Reads EXIF tags from image files (RAW, JPEG, TIFF, HEIC).

        Returns a dict with dt/orientation/make/camera/lens (missing keys are None).
        """
        data: Dict[str, Any] = {'dt': None, 'orientation': None, 'make': None, 'camera': None, 'lens': None}
        try:
            with path.open('rb') as f:
                # details=False speeds up processing significantly
                tags = exifread.process_file(f, details=False)
        except Exception as e:
            logging.debug(f"ExifRead failed for {path}: {e}")
            return data

        data['dt'] = self._parse_exif_date(tags)
        data['orientation'] = self._parse_orientation(tags)

        if 'Image Make' in tags:
            data['make'] = str(tags['Image Make']).strip() or None
        if 'Image Model' in tags:
            data['camera'] = str(tags['Image Model']).strip() or None
        if 'EXIF LensModel' in tags:
            data['lens'] = str(tags['EXIF LensModel']).strip() or None

        return data

    def get_video_metadata(self, path: Path) -> tuple[Dict[str, Any], Optional[str]]:
        """
        Extracts metadata from video files.

        Returns (data, source) where source names the tool that found the date.
        """
        # Partial result (duration but no date) kept in case no tool finds a date
        partial: Dict[str, Any] = {}

        # Strategy 1: Try MediaInfo (Fastest, usually sufficient)
        if MediaInfo is not None:
            try:
                mi_data = self._extract_mediainfo(path)
                if mi_data['dt']:
                    return mi_data, 'mediainfo'
                if mi_data['duration']:
                    partial = mi_data
            except Exception as e:
                logging.debug(f"MediaInfo failed for {path}: {e}")

        # Strategy 2: Try ExifTool (requires system install)
        try:
            et_data = self._extract_exiftool(path)
            if et_data['dt']:
                if not et_data['duration']:
                    et_data['duration'] = partial.get('duration')
                return et_data, 'exiftool'
            if et_data['duration'] and not partial:
                partial = et_data
        except Exception as e:
            # Only log at debug level to avoid spamming console if tool is missing
            logging.debug(f"ExifTool failed for {path}: {e}")

        return partial, None

    # --- Internal Extraction Helpers ---

    def _extract_mediainfo(self, path: Path) -> Dict[str, Any]:
        """Parses video using pymediainfo."""
        mi = MediaInfo.parse(str(path))
        data: Dict[str, Any] = {'dt': None, 'duration': None, 'make': None, 'camera': None}

        for track in mi.tracks:
            if track.track_type != "General":
                continue
            if getattr(track, "duration", None):
                # MediaInfo duration is in milliseconds
                data['duration'] = float(track.duration) / 1000.0

            # Priority: Original -> Encoded -> Tagged
            # file_last_modification_date is left to the mtime fallback.
            for field in ("recorded_date", "encoded_date", "tagged_date"):
                val = getattr(track, field, None)
                if val:
                    dt = self._parse_flexible_date(str(val))
                    if dt:
                        data['dt'] = dt
                        break

            data['make'] = getattr(track, "make", None) or getattr(track, "comapplequicktimemake", None)
            data['camera'] = (
                getattr(track, "performer", None) or
                getattr(track, "device_model", None) or
                getattr(track, "comapplequicktimemodel", None)
            )
        return data

    def _extract_exiftool(self, path: Path) -> Dict[str, Any]:
        """
        Wraps the 'exiftool' command line utility.
        Must be installed and on the system PATH.
        """
        # -j = JSON output
        # -n = No formatting (returns seconds as float, clean dates)
        cmd = ["exiftool", "-j", "-n", str(path)]
        out = subprocess.check_output(cmd, stderr=subprocess.DEVNULL, text=True,
                                      timeout=config.CONVERTER_TIMEOUT_SEC)
        data_list = json.loads(out)

        data: Dict[str, Any] = {'dt': None, 'duration': None, 'make': None, 'camera': None}
        if not data_list:
            return data

        tags = data_list[0]

        for field in ("DateTimeOriginal", "CreationDate", "CreateDate", "MediaCreateDate"):
            if tags.get(field):
                dt = self._parse_flexible_date(str(tags[field]))
                if dt:
                    data['dt'] = dt
                    break

        if tags.get("Duration"):
            try:
                data['duration'] = float(tags["Duration"])
            except (TypeError, ValueError):
                pass

        data['make'] = tags.get("Make")
        data['camera'] = tags.get("Model") or tags.get("CameraModelName")
        return data

    def _parse_exif_date(self, tags) -> Optional[datetime]:
        """Helper to parse standard EXIF date strings from exifread."""
        for tag in config.DATE_TAGS:
            if tag in tags:
                try:
                    # EXIF format is usually "YYYY:MM:DD HH:MM:SS"
                    dt_str = str(tags[tag]).strip().replace(':', '-', 2)
                    return datetime.strptime(dt_str[:19], "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    continue
        return None

    def _parse_orientation(self, tags) -> Optional[int]:
        tag = tags.get(config.ORIENTATION_TAG)
        if tag is None:
            return None
        try:
            value = int(tag.values[0])
        except (AttributeError, IndexError, TypeError, ValueError):
            return None
        return value if 1 <= value <= 8 else None

    def _parse_flexible_date(self, dt_str: str) -> Optional[datetime]:
        """
        Handles various date formats (ISO, UTC suffixes, Exiftool quirks).
        Returns a naive datetime object in local time; zoned values
        (MediaInfo writes "UTC 2020-01-01 12:00:00") are converted first.
        """
        if not dt_str:
            return None

        is_utc = "UTC" in dt_str
        clean = dt_str.replace("UTC", "").strip()

        # 1. Try ISO format (e.g. 2020-01-01T12:00:00)
        try:
            dt = datetime.fromisoformat(clean)
        except ValueError:
            # 2. Try Standard EXIF style "YYYY:MM:DD HH:MM:SS"
            try:
                clean_exif = clean.replace(":", "-", 2)
                # Drop sub-second precision and zone offsets
                dt = datetime.strptime(clean_exif[:19], "%Y-%m-%d %H:%M:%S")
            except ValueError:
                return None

        if is_utc and dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        if dt.tzinfo is not None:
            dt = dt.astimezone().replace(tzinfo=None)
        return dt

    def _fallback_file_datetime(self, path: Path) -> datetime:
        try:
            return datetime.fromtimestamp(path.stat().st_mtime)
        except OSError as e:
            logging.warning(f"Cannot stat {path}: {e}; using current time")
            return datetime.now()
