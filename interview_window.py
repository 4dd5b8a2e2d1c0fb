"""Interview window: question, recording controls, answer box and banners."""

from __future__ import annotations

try:
    from PySide6.QtCore import Qt
    from PySide6.QtWidgets import (
        QHBoxLayout,
        QLabel,
        QPlainTextEdit,
        QPushButton,
        QVBoxLayout,
        QWidget,
    )
except Exception:  # pragma: no cover
    Qt = None  # type: ignore
    QHBoxLayout = object  # type: ignore
    QLabel = object  # type: ignore
    QPlainTextEdit = object  # type: ignore
    QPushButton = object  # type: ignore
    QVBoxLayout = object  # type: ignore
    QWidget = object  # type: ignore

from models import SessionState

_ERROR_STYLE = (
    "color: #b91c1c; background: #fef2f2; border: 1px solid #fecaca;"
    "border-radius: 6px; padding: 8px;"
)
_INFO_STYLE = "color: #065f46;"


class InterviewWindow(QWidget):
    """Plain widget tree; all behaviour is wired up by ``main.App``."""

    def __init__(self) -> None:
        if Qt is None:
            raise RuntimeError("PySide6 is not installed")
        super().__init__()
        self.setMinimumWidth(640)

        self.title_label = QLabel("")
        self.title_label.setStyleSheet("font-size: 18px; font-weight: bold;")
        self.progress_label = QLabel("")
        self.question_label = QLabel("")
        self.question_label.setWordWrap(True)
        self.question_label.setStyleSheet("font-size: 16px; padding: 8px 0;")

        self.start_button = QPushButton("Start Recording")
        self.pause_button = QPushButton("Pause")
        self.resume_button = QPushButton("Resume")
        self.stop_button = QPushButton("Stop && Transcribe")
        self.reset_button = QPushButton("Reset")

        controls = QHBoxLayout()
        for button in (
            self.start_button,
            self.pause_button,
            self.resume_button,
            self.stop_button,
            self.reset_button,
        ):
            controls.addWidget(button)

        self.status_label = QLabel("")
        self.takes_label = QLabel("")
        self.takes_label.setStyleSheet(_INFO_STYLE)

        self.answer_edit = QPlainTextEdit()
        self.answer_edit.setPlaceholderText("Type your answer here or use voice recording...")

        self.asr_banner = QLabel("")
        self.asr_banner.setWordWrap(True)
        self.asr_banner.setStyleSheet(_ERROR_STYLE)
        self.retry_button = QPushButton("Retry Speech Recognition")
        asr_row = QHBoxLayout()
        asr_row.addWidget(self.asr_banner, 1)
        asr_row.addWidget(self.retry_button)
        self._asr_box = QWidget()
        self._asr_box.setLayout(asr_row)

        self.error_banner = QLabel("")
        self.error_banner.setWordWrap(True)
        self.error_banner.setStyleSheet(_ERROR_STYLE)
        self.dismiss_button = QPushButton("Dismiss")
        error_row = QHBoxLayout()
        error_row.addWidget(self.error_banner, 1)
        error_row.addWidget(self.dismiss_button)
        self._error_box = QWidget()
        self._error_box.setLayout(error_row)

        self.next_button = QPushButton("Next")

        layout = QVBoxLayout()
        layout.addWidget(self.title_label)
        layout.addWidget(self.progress_label)
        layout.addWidget(self.question_label)
        layout.addLayout(controls)
        layout.addWidget(self.status_label)
        layout.addWidget(self.takes_label)
        layout.addWidget(self.answer_edit, 1)
        layout.addWidget(self._asr_box)
        layout.addWidget(self._error_box)
        layout.addWidget(self.next_button, 0, Qt.AlignRight)
        self.setLayout(layout)

        self.show_asr_error(None)
        self.show_error(None)

    def set_question(self, index: int, total: int, text: str, is_last: bool) -> None:
        self.progress_label.setText(f"Question {index + 1} of {total}")
        self.question_label.setText(text)
        self.next_button.setText("Finish" if is_last else "Next")

    def set_answer_text(self, text: str) -> None:
        """Replace the answer box content without echoing an edit back."""
        if self.answer_edit.toPlainText() == text:
            return
        self.answer_edit.blockSignals(True)
        self.answer_edit.setPlainText(text)
        self.answer_edit.blockSignals(False)

    def set_take_count(self, count: int) -> None:
        self.takes_label.setText(f"Recordings: {count} (can record more)" if count else "")
        self.start_button.setText("Record More" if count else "Start Recording")

    def set_recording_state(self, state: SessionState, busy: bool) -> None:
        recording = state in (SessionState.RECORDING, SessionState.PAUSED)
        idle = state == SessionState.IDLE
        self.start_button.setEnabled(idle)
        self.pause_button.setEnabled(state == SessionState.RECORDING)
        self.resume_button.setEnabled(state == SessionState.PAUSED)
        self.stop_button.setEnabled(recording)
        self.reset_button.setEnabled(idle)
        self.next_button.setEnabled(idle and not busy)

        if state == SessionState.RECORDING:
            self.status_label.setText("Recording...")
        elif state == SessionState.PAUSED:
            self.status_label.setText("Recording... (Paused)")
        elif state in (SessionState.STOPPING, SessionState.PROCESSING):
            self.status_label.setText("Processing...")
        elif busy:
            self.status_label.setText("Transcribing...")
        else:
            self.status_label.setText("")

    def show_asr_error(self, message: str | None) -> None:
        self.asr_banner.setText(f"Speech Recognition Error: {message}" if message else "")
        self._asr_box.setVisible(bool(message))

    def show_error(self, message: str | None) -> None:
        self.error_banner.setText(message or "")
        self._error_box.setVisible(bool(message))

    def show_message(self, text: str) -> None:
        self.question_label.setText(text)
        for button in (
            self.start_button,
            self.pause_button,
            self.resume_button,
            self.stop_button,
            self.reset_button,
            self.next_button,
        ):
            button.setEnabled(False)
        self.answer_edit.setReadOnly(True)
