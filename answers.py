"""Per-question answer text and its persistence."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Mapping, Optional

from interfaces import AnswerStore
from models import AnswerBuffer, ExistingAnswer, SaveResult

logger = logging.getLogger(__name__)


class AnswerAccumulator:
    def __init__(self, store: AnswerStore, interview_id: int, applicant_id: int) -> None:
        self._store = store
        self._interview_id = interview_id
        self._applicant_id = applicant_id
        self._lock = threading.Lock()
        self._buffers: Dict[int, AnswerBuffer] = {}
        self._save_locks: Dict[int, threading.Lock] = {}

    def load_existing(self, answers: Mapping[int, ExistingAnswer]) -> None:
        with self._lock:
            for question_id, existing in answers.items():
                self._buffers[question_id] = AnswerBuffer(
                    question_id=question_id,
                    text=existing.text,
                    remote_answer_id=existing.id,
                    saved_text=existing.text if existing.id is not None else None,
                )

    def text(self, question_id: int) -> str:
        with self._lock:
            buf = self._buffers.get(question_id)
            return buf.text if buf else ""

    def buffer(self, question_id: int) -> Optional[AnswerBuffer]:
        with self._lock:
            return self._buffers.get(question_id)

    def append(self, question_id: int, text: str) -> str:
        """Add a transcribed take after any existing text, separated by one space."""
        addition = text.strip()
        with self._lock:
            buf = self._get_or_create(question_id)
            if not addition:
                return buf.text
            if buf.text.strip():
                buf.text = f"{buf.text} {addition}"
            else:
                buf.text = addition
            return buf.text

    def set_manual(self, question_id: int, text: str) -> str:
        with self._lock:
            buf = self._get_or_create(question_id)
            buf.text = text
            return buf.text

    def flush(self, question_id: int) -> SaveResult:
        # Serialised per question: a later flush must see the id an earlier one captured.
        with self._save_lock(question_id):
            with self._lock:
                buf = self._get_or_create(question_id)
                text = buf.text
                answer_id = buf.remote_answer_id

            try:
                if answer_id is not None:
                    self._store.update_answer(answer_id, text)
                else:
                    answer_id = self._store.create_answer(
                        self._interview_id, question_id, self._applicant_id, text
                    )
            except Exception as exc:
                logger.warning("Saving answer for question %s failed: %s", question_id, exc)
                return SaveResult(success=False, reason=str(exc) or type(exc).__name__)

            with self._lock:
                if buf.remote_answer_id is None:
                    buf.remote_answer_id = answer_id
                buf.saved_text = text
        logger.debug("Saved answer %s for question %s", answer_id, question_id)
        return SaveResult(success=True, reason="ok", answer_id=answer_id)

    def discard(self) -> None:
        with self._lock:
            self._buffers.clear()

    def _get_or_create(self, question_id: int) -> AnswerBuffer:
        buf = self._buffers.get(question_id)
        if buf is None:
            buf = AnswerBuffer(question_id=question_id)
            self._buffers[question_id] = buf
        return buf

    def _save_lock(self, question_id: int) -> threading.Lock:
        with self._lock:
            return self._save_locks.setdefault(question_id, threading.Lock())
