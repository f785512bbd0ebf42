"""
Video input helpers: download a remote video and sample JPEG frames with ffmpeg.
"""
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import List

import requests

logger = logging.getLogger(__name__)

FFMPEG_BINARY = os.getenv("FFMPEG_PATH", "ffmpeg")
FFMPEG_TIMEOUT_SECONDS = 180
DOWNLOAD_TIMEOUT_SECONDS = 30
ALLOWED_VIDEO_TYPES = {"video/mp4", "video/quicktime", "video/webm"}


class VideoInputError(Exception):
    """The video could not be fetched or decoded into frames."""


class VideoTooLargeError(VideoInputError):
    pass


def extract_frames(video_path: str, max_frames: int = 20) -> List[bytes]:
    """One frame every 2 seconds at 512px width, up to `max_frames` JPEGs."""
    frame_dir = tempfile.mkdtemp(prefix="aimalyze-frames-")
    try:
        cmd = [
            FFMPEG_BINARY, "-hide_banner", "-loglevel", "error",
            "-i", video_path,
            "-vf", "fps=0.5,scale=512:-1",
            "-qscale:v", "2",
            os.path.join(frame_dir, "frame-%02d.jpg"),
        ]
        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=FFMPEG_TIMEOUT_SECONDS)
        except FileNotFoundError as e:
            raise VideoInputError(f"ffmpeg not found at {FFMPEG_BINARY}") from e
        except subprocess.TimeoutExpired as e:
            raise VideoInputError("Frame extraction timed out") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode(errors="replace")[:500]
            raise VideoInputError(f"Frame extraction failed: {stderr}") from e

        frame_files = sorted(Path(frame_dir).glob("*.jpg"))[:max_frames]
        return [f.read_bytes() for f in frame_files]
    finally:
        shutil.rmtree(frame_dir, ignore_errors=True)


def download_video(url: str, dest_path: str, max_bytes: int) -> int:
    """Stream a direct video URL to `dest_path`. Returns bytes written."""
    written = 0
    try:
        with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT_SECONDS) as r:
            r.raise_for_status()
            content_type = (r.headers.get("content-type") or "").split(";")[0].strip().lower()
            if content_type and content_type not in ALLOWED_VIDEO_TYPES:
                raise VideoInputError(f"Unsupported video type: {content_type}")
            with open(dest_path, "wb") as f:
                for chunk in r.iter_content(chunk_size=1024 * 1024):
                    written += len(chunk)
                    if written > max_bytes:
                        raise VideoTooLargeError(f"Video exceeds maximum size of {max_bytes // (1024 * 1024)}MB")
                    f.write(chunk)
    except requests.exceptions.RequestException as e:
        raise VideoInputError(f"Failed to download video: {e}") from e
    logger.info("[VIDEO] Downloaded %s bytes from %s", written, url)
    return written
