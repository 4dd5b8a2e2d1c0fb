from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import pytest

from models import AudioContainer, CaptureConstraints, ExistingAnswer, Question


class FakeTrack:
    def __init__(self, on_chunk, fail_on_start: Optional[Exception] = None) -> None:  # noqa: ANN001
        self.on_chunk = on_chunk
        self.fail_on_start = fail_on_start
        self.started = False
        self.paused = False
        self.stopped = False
        self.released = False

    @property
    def active(self) -> bool:
        return not self.released

    def start(self) -> None:
        if self.fail_on_start is not None:
            raise self.fail_on_start
        self.started = True

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def stop(self) -> None:
        self.stopped = True

    def release(self) -> None:
        self.released = True

    def emit(self, chunk: bytes) -> None:
        self.on_chunk(chunk)


class FakeDevice:
    def __init__(
        self,
        supported: Sequence[AudioContainer] = (AudioContainer.WAV,),
        fail_on_open: Optional[Exception] = None,
        fail_on_start: Optional[Exception] = None,
    ) -> None:
        self.supported = tuple(supported)
        self.fail_on_open = fail_on_open
        self.fail_on_start = fail_on_start
        self.tracks: List[FakeTrack] = []
        self.constraints: Optional[CaptureConstraints] = None
        self.container: Optional[AudioContainer] = None

    def is_supported(self, container: AudioContainer) -> bool:
        return container in self.supported

    def open(self, constraints, container, on_chunk) -> FakeTrack:  # noqa: ANN001
        if self.fail_on_open is not None:
            raise self.fail_on_open
        self.constraints = constraints
        self.container = container
        track = FakeTrack(on_chunk, fail_on_start=self.fail_on_start)
        self.tracks.append(track)
        return track

    @property
    def last_track(self) -> FakeTrack:
        return self.tracks[-1]

    @property
    def active_tracks(self) -> int:
        return sum(1 for t in self.tracks if t.active)


class FakeQuestionSource:
    def __init__(self, questions: List[Question], fail: Optional[Exception] = None) -> None:
        self.questions = questions
        self.fail = fail

    def list_questions(self, interview_id: int) -> List[Question]:
        if self.fail is not None:
            raise self.fail
        return list(self.questions)


class FakeAnswerStore:
    def __init__(self, existing: Optional[Dict[int, ExistingAnswer]] = None) -> None:
        self.existing = existing or {}
        self.created: List[tuple] = []
        self.updated: List[tuple] = []
        self.failures: List[Exception] = []
        self._next_id = 100

    def get_existing_answers(self, applicant_id: int) -> Dict[int, ExistingAnswer]:
        return dict(self.existing)

    def create_answer(self, interview_id, question_id, applicant_id, text) -> int:  # noqa: ANN001
        if self.failures:
            raise self.failures.pop(0)
        self.created.append((interview_id, question_id, applicant_id, text))
        self._next_id += 1
        return self._next_id

    def update_answer(self, answer_id: int, text: str) -> None:
        if self.failures:
            raise self.failures.pop(0)
        self.updated.append((answer_id, text))


@pytest.fixture
def fake_device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def make_device():
    return FakeDevice


@pytest.fixture
def answer_store() -> FakeAnswerStore:
    return FakeAnswerStore()


@pytest.fixture
def make_store():
    return FakeAnswerStore


@pytest.fixture
def make_question_source():
    return FakeQuestionSource
