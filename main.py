"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from typing import Callable, Optional

from api_client import InterviewApiClient
from config import JsonConfigStore
from converter import AudioFormatConverter
from errors import TRANSCRIPTION_FAILED
from interview_controller import InterviewRunController
from interview_window import InterviewWindow
from models import RunState, ServiceAvailability, SessionState
from recorder import AudioCaptureSession, SoundDeviceMicrophone
from transcription_client import TranscriptionClient

try:
    from PySide6.QtCore import QObject, Signal
    from PySide6.QtWidgets import QApplication
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


class UIBridge(QObject):
    refresh_signal = Signal()
    error_signal = Signal(str, str)  # code, message
    text_signal = Signal(int, str)  # question_id, text


class App:
    def __init__(self, interview_id: int, applicant_id: int) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        self.ui = UIBridge()
        self.ui.refresh_signal.connect(self._refresh_ui)
        self.ui.error_signal.connect(self._on_error_ui)
        self.ui.text_signal.connect(self._on_text_ui)
        self._busy = False

        token = self.config_store.get_auth_token()
        timeout_s = self.config_store.get_request_timeout_s()
        self.api = InterviewApiClient(
            base_url=self.config_store.get_api_base_url(),
            auth_token=token,
            timeout_s=timeout_s,
        )
        self.transcriber = TranscriptionClient(
            base_url=self.config_store.get_transcription_url(),
            availability=ServiceAvailability(),
            request_timeout_s=timeout_s,
        )
        self.capture = AudioCaptureSession(
            device=SoundDeviceMicrophone(),
            converter=AudioFormatConverter(),
            on_state_change=self._on_capture_state,
        )
        self.controller = InterviewRunController(
            interview_id=interview_id,
            applicant_id=applicant_id,
            question_source=self.api,
            answer_store=self.api,
            capture=self.capture,
            transcriber=self.transcriber,
            auth_token=token,
            on_state_change=self._on_run_state,
            on_error=self._on_error,
            on_text_change=self._on_text,
        )

        self.window = InterviewWindow()
        self.window.setWindowTitle(f"Interview #{interview_id}")
        self.window.title_label.setText(f"Interview #{interview_id}")
        self.window.show_message("Loading...")
        self._connect_window()
        self.app.aboutToQuit.connect(self.shutdown)

    def _connect_window(self) -> None:
        w = self.window
        w.start_button.clicked.connect(self._on_start)
        w.pause_button.clicked.connect(self._on_pause)
        w.resume_button.clicked.connect(self._on_resume)
        w.stop_button.clicked.connect(self._on_stop)
        w.reset_button.clicked.connect(self._on_reset)
        w.answer_edit.textChanged.connect(self._on_answer_edited)
        w.retry_button.clicked.connect(self._on_retry)
        w.dismiss_button.clicked.connect(self._on_dismiss)
        w.next_button.clicked.connect(self._on_next)

    # ------------------------------------------------------------------
    # Controller callbacks (may arrive on worker threads → emit signals)
    # ------------------------------------------------------------------

    def _on_capture_state(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.refresh_signal.emit()

    def _on_run_state(self, from_state: RunState, to_state: RunState) -> None:
        logger.info("Interview run %s -> %s", from_state.value, to_state.value)
        self.ui.refresh_signal.emit()

    def _on_error(self, code: str, message: str) -> None:
        self.ui.error_signal.emit(code, message)

    def _on_text(self, question_id: int, text: str) -> None:
        self.ui.text_signal.emit(question_id, text)

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_error_ui(self, code: str, message: str) -> None:
        if code == TRANSCRIPTION_FAILED:
            self.window.show_asr_error(message)
        else:
            self.window.show_error(message)

    def _on_text_ui(self, question_id: int, text: str) -> None:
        question = self.controller.current_question
        if question is not None and question.id == question_id:
            self.window.set_answer_text(text)

    def _refresh_ui(self) -> None:
        c = self.controller
        w = self.window
        if c.state == RunState.SUBMITTED:
            w.show_message("Thank you! Your answers have been submitted.")
            return
        if c.state == RunState.LOADING:
            if c.load_error:
                w.show_message(f"Could not load interview: {c.load_error}")
            return
        question = c.current_question
        if question is None:
            w.show_message("No questions for this interview.")
            return
        w.answer_edit.setReadOnly(False)
        w.set_question(c.index, len(c.questions), question.text, c.is_last_question)
        w.set_answer_text(c.answer_text)
        w.set_take_count(c.take_count())
        w.set_recording_state(self.capture.state, self._busy or c.transcribing or c.saving)
        w.show_asr_error(c.asr_error)
        w.show_error(c.save_error or c.device_error)

    def _on_start(self) -> None:
        self.controller.start_recording()
        self._refresh_ui()

    def _on_pause(self) -> None:
        self.controller.pause_recording()

    def _on_resume(self) -> None:
        self.controller.resume_recording()

    def _on_stop(self) -> None:
        # Transcription blocks on the network; keep it off the Qt thread.
        self._run_in_background(self.controller.stop_recording)

    def _on_reset(self) -> None:
        self.controller.reset_takes()
        self._refresh_ui()

    def _on_answer_edited(self) -> None:
        self.controller.edit_answer(self.window.answer_edit.toPlainText())

    def _on_retry(self) -> None:
        self.controller.retry_speech_recognition()
        self.window.show_asr_error(None)

    def _on_dismiss(self) -> None:
        self.controller.dismiss_save_error()
        self.window.show_error(None)

    def _on_next(self) -> None:
        if self.controller.is_last_question:
            self._run_in_background(self.controller.finish)
        else:
            self._run_in_background(self.controller.next)

    def _run_in_background(self, target: Callable[[], object]) -> None:
        self._busy = True
        self._refresh_ui()

        def worker() -> None:
            try:
                target()
            except Exception:
                logger.exception("Background task failed")
            finally:
                self._busy = False
                self.ui.refresh_signal.emit()

        threading.Thread(target=worker, daemon=True).start()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.window.show()
        self._run_in_background(self.controller.load)
        return self.app.exec()

    def shutdown(self) -> None:
        self.controller.close()
        self.transcriber.close()
        self.api.close()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a voice-answered interview.")
    parser.add_argument("interview_id", type=int)
    parser.add_argument("applicant_id", type=int)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = App(args.interview_id, args.applicant_id)
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
