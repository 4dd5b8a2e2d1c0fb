"""Core data models for the interview runner."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    PAUSED = "PAUSED"
    STOPPING = "STOPPING"
    PROCESSING = "PROCESSING"
    STOPPED = "STOPPED"
    ERROR = "ERROR"


class RunState(str, Enum):
    LOADING = "LOADING"
    ANSWERING = "ANSWERING"
    SUBMITTED = "SUBMITTED"
    CLOSED = "CLOSED"


class AudioContainer(Enum):
    """Closed set of containers a capture backend may produce."""

    WAV = ("audio/wav", "wav")
    WEBM_OPUS = ("audio/webm;codecs=opus", "webm")
    WEBM = ("audio/webm", "webm")
    MP4 = ("audio/mp4", "mp4")
    OGG_OPUS = ("audio/ogg;codecs=opus", "ogg")

    def __init__(self, mime_type: str, ffmpeg_format: str) -> None:
        self.mime_type = mime_type
        self.ffmpeg_format = ffmpeg_format

    @classmethod
    def from_mime_type(cls, mime_type: str) -> "AudioContainer":
        normalized = mime_type.replace(" ", "").lower()
        for member in cls:
            if member.mime_type == normalized:
                return member
        base = normalized.split(";", 1)[0]
        if base in ("audio/wave", "audio/x-wav"):
            return cls.WAV
        for member in cls:
            if member.mime_type == base:
                return member
        raise ValueError(f"unsupported audio container: {mime_type}")


class FailureReason(str, Enum):
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    NOT_FOUND = "NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN = "UNKNOWN"


class AttemptStatus(str, Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class CaptureConstraints:
    sample_rate: int = 16000
    channels: int = 1
    echo_cancellation: bool = True
    noise_suppression: bool = True


@dataclass
class RecordedBlob:
    data: bytes
    container: AudioContainer

    @property
    def content_type(self) -> str:
        return self.container.mime_type


@dataclass
class NormalizedAudio:
    data: bytes
    sample_rate_hz: int = 16000
    channels: int = 1
    container: AudioContainer = AudioContainer.WAV

    @property
    def content_type(self) -> str:
        return self.container.mime_type


UploadPayload = Union[NormalizedAudio, RecordedBlob]


@dataclass
class RecordedTake:
    blob: RecordedBlob
    audio: Optional[NormalizedAudio]
    take_number: int
    captured_bytes: int
    conversion_error: str = ""

    @property
    def is_empty(self) -> bool:
        return self.captured_bytes == 0

    @property
    def upload_payload(self) -> UploadPayload:
        """Canonical audio, or the original blob when conversion failed."""
        if self.audio is not None:
            return self.audio
        return self.blob


@dataclass
class TranscriptionAttempt:
    status: AttemptStatus = AttemptStatus.PENDING
    reason: Optional[FailureReason] = None
    text: str = ""
    message: str = ""
    question_id: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == AttemptStatus.SUCCEEDED


@dataclass
class Question:
    id: int
    text: str
    difficulty: str = ""


@dataclass
class ExistingAnswer:
    id: Optional[int]
    question_id: int
    text: str


@dataclass
class AnswerBuffer:
    question_id: int
    text: str = ""
    remote_answer_id: Optional[int] = None
    saved_text: Optional[str] = None

    @property
    def dirty(self) -> bool:
        return self.saved_text != self.text


@dataclass
class SaveResult:
    success: bool
    reason: str
    answer_id: Optional[int] = None


@dataclass
class ServiceAvailability:
    """Reset-able health flag for the transcription service.

    Owned by whoever builds the controller and passed explicitly, so separate
    sessions never share it by accident.
    """

    available: bool = True
    last_reason: str = ""
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def mark_unavailable(self, reason: str) -> None:
        with self._lock:
            self.available = False
            self.last_reason = reason

    def reset(self) -> None:
        with self._lock:
            self.available = True
            self.last_reason = ""
