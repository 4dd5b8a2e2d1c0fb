"""HTTP client for the remote speech-recognition service.

The service exposes ``HEAD /availability-check`` for a cheap existence probe
and ``POST /transcribe`` taking the raw audio as the request body.  Failures
are classified into ``FailureReason`` values; the ones that point at the
service itself mark the shared ``ServiceAvailability`` flag down so later
calls fail fast until ``reset()``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from errors import TranscriptionError
from models import (
    AttemptStatus,
    FailureReason,
    ServiceAvailability,
    TranscriptionAttempt,
    UploadPayload,
)

logger = logging.getLogger(__name__)

FALLBACK_MARKER = "[Audio recorded - please type your answer manually]"

# Reasons that say the service itself is broken, not this one request.
_POISONING_REASONS = frozenset(
    {
        FailureReason.SERVICE_UNAVAILABLE,
        FailureReason.NOT_FOUND,
        FailureReason.SERVER_ERROR,
        FailureReason.NETWORK_ERROR,
    }
)


def classify_status(status_code: int) -> FailureReason:
    if status_code == 404:
        return FailureReason.NOT_FOUND
    if status_code == 503:
        return FailureReason.SERVICE_UNAVAILABLE
    if status_code >= 500:
        return FailureReason.SERVER_ERROR
    return FailureReason.UNKNOWN


class TranscriptionClient:
    def __init__(
        self,
        base_url: str,
        availability: Optional[ServiceAvailability] = None,
        request_timeout_s: float = 15.0,
        probe_timeout_s: float = 5.0,
        probe_path: str = "/availability-check",
        transcribe_path: str = "/transcribe",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.availability = availability or ServiceAvailability()
        self._request_timeout_s = request_timeout_s
        self._probe_timeout_s = probe_timeout_s
        self._probe_path = probe_path
        self._transcribe_path = transcribe_path
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=request_timeout_s,
            transport=transport,
        )

    def __enter__(self) -> "TranscriptionClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def available(self) -> bool:
        return self.availability.available

    def close(self) -> None:
        self._client.close()

    def reset(self) -> None:
        """Forget a cached outage; the next transcribe call goes to the network."""
        self.availability.reset()
        logger.info("Speech recognition availability reset")

    def probe(self) -> bool:
        try:
            resp = self._client.head(self._probe_path, timeout=self._probe_timeout_s)
        except httpx.HTTPError as exc:
            logger.warning("Transcription service probe failed: %s", exc)
            self.availability.mark_unavailable(FailureReason.NETWORK_ERROR.value)
            return False
        if resp.status_code >= 400:
            reason = classify_status(resp.status_code)
            logger.warning("Transcription service probe returned HTTP %d", resp.status_code)
            self.availability.mark_unavailable(reason.value)
            return False
        return True

    def transcribe(self, audio: UploadPayload, auth_token: str = "") -> str:
        if not self.availability.available:
            raise TranscriptionError(FailureReason.SERVICE_UNAVAILABLE.value)

        headers = {"Content-Type": audio.content_type}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"

        try:
            resp = self._client.post(
                self._transcribe_path,
                content=audio.data,
                headers=headers,
                timeout=self._request_timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise self._failure(FailureReason.TIMEOUT, "", exc) from None
        except httpx.TransportError as exc:
            raise self._failure(
                FailureReason.NETWORK_ERROR,
                f"Network connection failed: {exc}",
                exc,
            ) from None

        if resp.status_code >= 400:
            reason = classify_status(resp.status_code)
            message = ""
            if reason is FailureReason.UNKNOWN:
                message = f"HTTP {resp.status_code}: {self._error_detail(resp)}"
            raise self._failure(reason, message, None)

        return self._extract_text(resp)

    def attempt(
        self,
        audio: UploadPayload,
        auth_token: str = "",
        question_id: Optional[int] = None,
    ) -> TranscriptionAttempt:
        """Like ``transcribe`` but reports failure in the result instead of raising."""
        try:
            text = self.transcribe(audio, auth_token)
        except TranscriptionError as exc:
            return TranscriptionAttempt(
                status=AttemptStatus.FAILED,
                reason=FailureReason(exc.reason),
                message=exc.message,
                question_id=question_id,
            )
        return TranscriptionAttempt(
            status=AttemptStatus.SUCCEEDED,
            text=text,
            question_id=question_id,
        )

    def _failure(
        self, reason: FailureReason, message: str, exc: Optional[Exception]
    ) -> TranscriptionError:
        if reason in _POISONING_REASONS:
            self.availability.mark_unavailable(reason.value)
        logger.warning("Transcription failed (%s): %s", reason.value, message or exc)
        return TranscriptionError(reason.value, message)

    def _extract_text(self, resp: httpx.Response) -> str:
        try:
            body: Any = resp.json()
        except ValueError:
            raise self._failure(
                FailureReason.UNKNOWN, "Transcription response is not valid JSON", None
            ) from None

        if not isinstance(body, dict) or not body.get("success"):
            detail = body.get("error") if isinstance(body, dict) else None
            raise self._failure(
                FailureReason.UNKNOWN,
                f"Transcription rejected: {detail or 'unexpected response'}",
                None,
            )
        data = body.get("data")
        if not isinstance(data, dict) or "transcription" not in data:
            raise self._failure(
                FailureReason.UNKNOWN, "Transcription response has no text", None
            )
        return str(data.get("transcription") or "").strip()

    @staticmethod
    def _error_detail(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text or resp.reason_phrase
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)
