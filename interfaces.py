"""Protocol interfaces used by the capture session and interview controller."""

from __future__ import annotations

from typing import Callable, Dict, List, Protocol

from models import AudioContainer, CaptureConstraints, ExistingAnswer, Question

ChunkCallback = Callable[[bytes], None]


class AudioTrack(Protocol):
    """An opened microphone stream.

    For ``AudioContainer.WAV`` the chunks handed to ``on_chunk`` are raw
    little-endian PCM16 frames; for every other container they are
    consecutive fragments of the encoded container.
    """

    @property
    def active(self) -> bool: ...

    def start(self) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...

    def release(self) -> None: ...


class MicrophoneDevice(Protocol):
    def is_supported(self, container: AudioContainer) -> bool: ...

    def open(
        self,
        constraints: CaptureConstraints,
        container: AudioContainer,
        on_chunk: ChunkCallback,
    ) -> AudioTrack: ...


class QuestionSource(Protocol):
    def list_questions(self, interview_id: int) -> List[Question]: ...


class AnswerStore(Protocol):
    def get_existing_answers(self, applicant_id: int) -> Dict[int, ExistingAnswer]: ...

    def create_answer(
        self,
        interview_id: int,
        question_id: int,
        applicant_id: int,
        text: str,
    ) -> int: ...

    def update_answer(self, answer_id: int, text: str) -> None: ...


class ConfigStore(Protocol):
    def get_api_base_url(self) -> str: ...

    def set_api_base_url(self, url: str) -> None: ...

    def get_transcription_url(self) -> str: ...

    def set_transcription_url(self, url: str) -> None: ...

    def get_auth_token(self) -> str: ...

    def set_auth_token(self, token: str) -> None: ...

    def get_request_timeout_s(self) -> float: ...
