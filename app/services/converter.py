"""ffmpeg-backed conversion of raw recordings into upload-ready MP3."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from app.application.interfaces import AudioConverterInterface, ConversionProgress
from app.config.settings import PipelineConfig

logger = logging.getLogger(__name__)


class ConversionError(RuntimeError):
    """Raised when ffmpeg fails to convert a recording."""


class FfmpegConverter(AudioConverterInterface):
    """Run ffmpeg in the thread pool and relay its progress onto the event loop."""

    def __init__(self, config: PipelineConfig) -> None:
        self._ffmpeg = config.ffmpeg_binary
        self._ffprobe = config.ffprobe_binary
        self._bitrate = config.mp3_bitrate

    async def convert(
        self,
        source_path: str,
        target_path: str,
        progress: Optional[ConversionProgress] = None,
    ) -> None:
        if not Path(source_path).exists():
            raise ConversionError(f"Source file not found: {source_path}")

        loop = asyncio.get_running_loop()

        def _relay(step: str, current: float, total: float) -> None:
            if progress is not None:
                loop.call_soon_threadsafe(progress, step, current, total)

        duration = await run_in_threadpool(self._probe_duration, source_path)
        await run_in_threadpool(self._convert_sync, source_path, target_path, duration, _relay)

        if not Path(target_path).exists():
            raise ConversionError(f"ffmpeg reported success but {target_path} is missing")
        logger.info("Converted %s -> %s", source_path, target_path)

    def _probe_duration(self, source_path: str) -> float:
        """Media duration in seconds, or 0 when ffprobe cannot tell."""
        try:
            process = subprocess.run(
                [
                    self._ffprobe,
                    "-v", "error",
                    "-show_entries", "format=duration",
                    "-of", "default=noprint_wrappers=1:nokey=1",
                    source_path,
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
        except (subprocess.CalledProcessError, OSError) as exc:
            logger.warning("ffprobe could not read %s: %s", source_path, exc)
            return 0.0
        try:
            return float(process.stdout.decode("utf-8", errors="replace").strip() or 0)
        except ValueError:
            return 0.0

    def _convert_sync(
        self,
        source_path: str,
        target_path: str,
        duration: float,
        relay: ConversionProgress,
    ) -> None:
        command = [
            self._ffmpeg,
            "-y",
            "-loglevel", "error",
            "-i", source_path,
            "-vn",
            "-codec:a", "libmp3lame",
            "-b:a", self._bitrate,
            "-progress", "pipe:1",
            "-nostats",
            target_path,
        ]
        relay("Starting conversion", 0, duration or 1)
        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise ConversionError(f"Could not start ffmpeg: {exc}") from exc

        assert process.stdout is not None
        for raw_line in process.stdout:
            key, _, value = raw_line.decode("utf-8", errors="replace").strip().partition("=")
            if key == "out_time_us" and duration > 0:
                try:
                    current = min(duration, int(value) / 1_000_000)
                except ValueError:
                    continue
                relay("Encoding MP3", current, duration)

        _, stderr = process.communicate()
        if process.returncode != 0:
            error_msg = stderr.decode("utf-8", errors="replace")[-2000:] if stderr else "No stderr"
            logger.error("ffmpeg failed for %s. stderr: %s", source_path, error_msg)
            raise ConversionError(f"ffmpeg failed to convert {Path(source_path).name}: {error_msg}")
        relay("Encoding MP3", duration or 1, duration or 1)


__all__ = ["ConversionError", "FfmpegConverter"]
