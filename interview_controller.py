"""Linear interview run: capture, transcribe, accumulate and save answers."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from answers import AnswerAccumulator
from errors import (
    ERROR_MESSAGES,
    LOAD_FAILED,
    SAVE_FAILED,
    TRANSCRIPTION_FAILED,
    MicrophoneUnavailable,
)
from interfaces import AnswerStore, QuestionSource
from models import (
    AttemptStatus,
    Question,
    RecordedTake,
    RunState,
    SaveResult,
    TranscriptionAttempt,
)
from recorder import AudioCaptureSession
from transcription_client import FALLBACK_MARKER, TranscriptionClient

logger = logging.getLogger(__name__)

StateCallback = Callable[[RunState, RunState], None]
ErrorCallback = Callable[[str, str], None]
TextCallback = Callable[[int, str], None]


class InterviewRunController:
    """Walks an applicant through the interview questions in order.

    There is no way back to an earlier question.  Transcription and save
    failures never block progress: they are reported through ``on_error``
    and kept on ``asr_error``/``save_error`` for the UI, and unsaved text
    stays in memory until a later save succeeds.
    """

    def __init__(
        self,
        interview_id: int,
        applicant_id: int,
        question_source: QuestionSource,
        answer_store: AnswerStore,
        capture: AudioCaptureSession,
        transcriber: TranscriptionClient,
        auth_token: str = "",
        insert_fallback_marker: bool = False,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_text_change: Optional[TextCallback] = None,
    ) -> None:
        self.interview_id = interview_id
        self.applicant_id = applicant_id
        self._question_source = question_source
        self._answer_store = answer_store
        self._capture = capture
        self._transcriber = transcriber
        self._auth_token = auth_token
        self._insert_fallback_marker = insert_fallback_marker
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._on_text_change = on_text_change

        self._lock = threading.RLock()
        self._state = RunState.LOADING
        self._questions: List[Question] = []
        self._index = 0
        self._take_counts: Dict[int, int] = {}
        self._in_flight = 0
        self._saving = 0
        self._accumulator = AnswerAccumulator(answer_store, interview_id, applicant_id)

        self.load_error: Optional[str] = None
        self.device_error: Optional[str] = None
        self.asr_error: Optional[str] = None
        self.save_error: Optional[str] = None

    def __enter__(self) -> "InterviewRunController":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current_question(self) -> Optional[Question]:
        with self._lock:
            if self._state != RunState.ANSWERING or not self._questions:
                return None
            return self._questions[self._index]

    @property
    def is_last_question(self) -> bool:
        return bool(self._questions) and self._index >= len(self._questions) - 1

    @property
    def progress(self) -> float:
        if not self._questions:
            return 0.0
        return min(self._index + 1, len(self._questions)) / len(self._questions)

    @property
    def transcribing(self) -> bool:
        return self._in_flight > 0

    @property
    def saving(self) -> bool:
        return self._saving > 0

    @property
    def is_recording(self) -> bool:
        return self._capture.is_recording

    @property
    def answer_text(self) -> str:
        question = self.current_question
        return self._accumulator.text(question.id) if question else ""

    def answer_for(self, question_id: int) -> str:
        return self._accumulator.text(question_id)

    def take_count(self, question_id: Optional[int] = None) -> int:
        if question_id is None:
            question = self.current_question
            if question is None:
                return 0
            question_id = question.id
        with self._lock:
            return self._take_counts.get(question_id, 0)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> bool:
        with self._lock:
            if self._state != RunState.LOADING:
                return False
        try:
            questions = self._question_source.list_questions(self.interview_id)
            existing = (
                self._answer_store.get_existing_answers(self.applicant_id)
                if self.applicant_id
                else {}
            )
        except Exception as exc:
            self.load_error = str(exc) or ERROR_MESSAGES[LOAD_FAILED]
            logger.error("Loading interview %s failed: %s", self.interview_id, exc)
            self._emit_error(LOAD_FAILED, self.load_error)
            return False

        self._accumulator.load_existing(existing)
        if not self._transcriber.probe():
            logger.info("Speech recognition unavailable; manual entry only")
        with self._lock:
            if self._state != RunState.LOADING:
                return False
            self._questions = sorted(questions, key=lambda q: q.id)
            self._index = 0
            self.load_error = None
            self._transition(RunState.ANSWERING)
        return True

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start_recording(self) -> bool:
        if self.current_question is None:
            return False
        self.device_error = None
        try:
            self._capture.start()
        except MicrophoneUnavailable as exc:
            self.device_error = exc.message
            self._emit_error(exc.code, exc.message)
            return False
        return True

    def pause_recording(self) -> None:
        self._capture.pause()

    def resume_recording(self) -> None:
        self._capture.resume()

    def stop_recording(self) -> Optional[TranscriptionAttempt]:
        """Finish the current take and transcribe it for the current question."""
        question = self.current_question
        if question is None:
            return None
        take = self._capture.stop()
        if take is None:
            return None
        with self._lock:
            self._take_counts[question.id] = self._take_counts.get(question.id, 0) + 1
        return self.transcribe_take(take, question.id)

    def reset_takes(self) -> None:
        question = self.current_question
        if question is None or self._capture.is_recording:
            return
        self._capture.reset_takes()
        with self._lock:
            self._take_counts[question.id] = 0

    def transcribe_take(self, take: RecordedTake, question_id: int) -> TranscriptionAttempt:
        if take.is_empty:
            logger.info("Take %d for question %s captured no audio", take.take_number, question_id)
            return TranscriptionAttempt(
                status=AttemptStatus.SUCCEEDED, text="", question_id=question_id
            )

        with self._lock:
            self._in_flight += 1
            self.asr_error = None
        try:
            attempt = self._transcriber.attempt(
                take.upload_payload, self._auth_token, question_id
            )
        finally:
            with self._lock:
                self._in_flight -= 1

        # close() flips to CLOSED under this lock before discarding buffers.
        with self._lock:
            if self._state == RunState.CLOSED:
                logger.info("Dropping transcription for question %s after close", question_id)
                return attempt

            if attempt.succeeded:
                self._notify_text(question_id, self._accumulator.append(question_id, attempt.text))
                return attempt

            message = attempt.message
            if take.conversion_error:
                message = f"{message} (recording was sent unconverted: {take.conversion_error})"
            self.asr_error = message
            self._emit_error(TRANSCRIPTION_FAILED, message)
            if self._insert_fallback_marker:
                self._notify_text(
                    question_id, self._accumulator.append(question_id, FALLBACK_MARKER)
                )
            return attempt

    def retry_speech_recognition(self) -> None:
        self._transcriber.reset()
        self.asr_error = None

    # ------------------------------------------------------------------
    # Answers and navigation
    # ------------------------------------------------------------------

    def edit_answer(self, text: str) -> None:
        question = self.current_question
        if question is None:
            return
        self._accumulator.set_manual(question.id, text)

    def dismiss_save_error(self) -> None:
        self.save_error = None

    def next(self) -> bool:
        """Save the current answer and move on; returns True if the index advanced."""
        question = self.current_question
        if question is None or self._capture.is_recording:
            return False
        self._save(question)
        with self._lock:
            if self._state != RunState.ANSWERING or self.is_last_question:
                return False
            self._index += 1
        self._capture.reset_takes()
        return True

    def finish(self) -> SaveResult:
        question = self.current_question
        if question is None:
            if self._state == RunState.ANSWERING:
                self._transition_locked(RunState.SUBMITTED)
                return SaveResult(success=True, reason="no questions")
            return SaveResult(success=False, reason=f"cannot finish while {self._state.value}")
        if self._capture.is_recording:
            return SaveResult(success=False, reason="recording in progress")
        result = self._save(question)
        self._transition_locked(RunState.SUBMITTED)
        return result

    def close(self) -> None:
        with self._lock:
            if self._state == RunState.CLOSED:
                return
            self._transition(RunState.CLOSED)
        self._capture.close()
        self._accumulator.discard()

    def _save(self, question: Question) -> SaveResult:
        with self._lock:
            self._saving += 1
            earlier = [q.id for q in self._questions[: self._index]]
        try:
            # Earlier answers whose save failed are retried along with this one.
            failures = []
            for question_id in earlier:
                buf = self._accumulator.buffer(question_id)
                if buf is not None and buf.dirty:
                    retried = self._accumulator.flush(question_id)
                    if not retried.success:
                        failures.append(retried.reason)
            result = self._accumulator.flush(question.id)
            if not result.success:
                failures.append(result.reason)
        finally:
            with self._lock:
                self._saving -= 1

        if failures:
            self.save_error = f"{ERROR_MESSAGES[SAVE_FAILED]} ({failures[-1]})"
            self._emit_error(SAVE_FAILED, self.save_error)
        else:
            self.save_error = None
        return result

    def _notify_text(self, question_id: int, text: str) -> None:
        if self._on_text_change:
            self._on_text_change(question_id, text)

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _transition_locked(self, to_state: RunState) -> None:
        with self._lock:
            self._transition(to_state)

    def _transition(self, to_state: RunState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
