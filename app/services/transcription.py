"""Gladia pre-recorded transcription client built on httpx."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from pathlib import Path
from typing import Any, Callable, Mapping

import httpx
from fastapi.concurrency import run_in_threadpool

from app.application.interfaces import TranscriptionProviderInterface
from app.config.settings import TranscriptionConfig
from app.domain.transcripts import TranscriptDocument
from app.utils import raise_if_cancelled, wait_or_cancel

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
}


class TranscriptionError(RuntimeError):
    """Raised when the provider rejects a request or a job ends in error."""


class TranscriptionJobFailedError(TranscriptionError):
    """The provider finished the job in error; polling the same job again cannot succeed."""


class GladiaTranscriptionClient(TranscriptionProviderInterface):
    """High-level facade over the Gladia v2 REST API."""

    def __init__(
        self,
        config: TranscriptionConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        headers = {}
        if config.api_key:
            headers["x-gladia-key"] = config.api_key.get_secret_value()
        else:
            logger.warning("TRANSCRIPTION_API_KEY is not configured; provider calls will be rejected")
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.request_timeout_seconds,
        )
        self._headers = headers

    async def aclose(self) -> None:
        await self._client.aclose()

    async def upload(self, file_path: str) -> str:
        path = Path(file_path)
        if not path.exists():
            raise TranscriptionError(f"Audio file not found: {file_path}")

        audio_bytes = await run_in_threadpool(path.read_bytes)
        if not audio_bytes:
            raise TranscriptionError(f"Audio file is empty: {path.name}")
        content_type = _CONTENT_TYPES.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0] or "audio/mpeg"

        payload = await self._request(
            "POST",
            "/v2/upload",
            files={"audio": (path.name, audio_bytes, content_type)},
        )
        audio_url = payload.get("audio_url")
        if not audio_url:
            raise TranscriptionError(f"Upload response missing audio_url for {path.name}")
        logger.info("Uploaded %s (%d bytes) -> %s", path.name, len(audio_bytes), audio_url)
        return str(audio_url)

    async def start_job(
        self,
        audio_url: str,
        *,
        expected_speakers: int,
        enable_diarization: bool = True,
        label: str | None = None,
    ) -> str:
        body: dict[str, Any] = {
            "audio_url": audio_url,
            "diarization": enable_diarization,
            "language": self._config.language,
            "sentences": True,
        }
        if enable_diarization:
            body["diarization_config"] = {
                "number_of_speakers": expected_speakers,
                "min_speakers": 1,
                "max_speakers": max(expected_speakers, 1),
            }
        if label:
            body["custom_metadata"] = {"label": label}

        payload = await self._request("POST", "/v2/pre-recorded", json=body)
        job_id = payload.get("id")
        if not job_id:
            raise TranscriptionError("Provider did not return a transcription id")
        logger.info("Started transcription job %s for %s (speakers=%d)", job_id, label or audio_url, expected_speakers)
        return str(job_id)

    async def fetch_result(self, job_id: str) -> TranscriptDocument:
        payload = await self._request("GET", f"/v2/pre-recorded/{job_id}")
        return TranscriptDocument.from_payload(payload)

    async def poll_until_done(
        self,
        job_id: str,
        *,
        cancel_event: asyncio.Event | None = None,
        on_poll: Callable[[int], None] | None = None,
    ) -> TranscriptDocument:
        deadline = time.monotonic() + self._config.max_wait_minutes * 60
        attempt = 0
        while time.monotonic() < deadline:
            raise_if_cancelled(cancel_event, f"Transcription {job_id}")

            document = await self.fetch_result(job_id)
            if document.status == "done":
                if document.error:
                    raise TranscriptionJobFailedError(f"Transcription failed: {document.error}")
                return document
            if document.status == "error":
                raise TranscriptionJobFailedError(f"Transcription failed: {document.error or 'Unknown error'}")

            attempt += 1
            logger.debug("Transcription %s status=%s attempt=%d", job_id, document.status, attempt)
            if on_poll is not None:
                on_poll(attempt)
            await wait_or_cancel(cancel_event, self._config.poll_interval_seconds)

        raise TranscriptionError(
            f"Transcription {job_id} did not complete within {self._config.max_wait_minutes} minutes"
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> Mapping[str, Any]:
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:500]
            raise TranscriptionError(
                f"Provider returned {exc.response.status_code} for {method} {url}: {body}"
            ) from exc
        except httpx.RequestError as exc:
            raise TranscriptionError(f"Unable to reach transcription provider: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise TranscriptionError(f"Invalid JSON from transcription provider: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise TranscriptionError("Unexpected response shape from transcription provider")
        return payload


__all__ = ["GladiaTranscriptionClient", "TranscriptionError", "TranscriptionJobFailedError"]
