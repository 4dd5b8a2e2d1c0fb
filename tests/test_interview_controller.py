from __future__ import annotations

import threading

import httpx
import pytest

from errors import LOAD_FAILED, MICROPHONE_UNAVAILABLE, SAVE_FAILED, TRANSCRIPTION_FAILED, MicrophoneUnavailable
from interview_controller import InterviewRunController
from models import AttemptStatus, ExistingAnswer, FailureReason, Question, RunState
from recorder import AudioCaptureSession
from transcription_client import FALLBACK_MARKER, TranscriptionClient

QUESTIONS = [
    Question(id=12, text="Why this role?"),
    Question(id=11, text="Tell us about yourself."),
    Question(id=13, text="Any questions for us?"),
]


class SpeechService:
    """Scripted transcription backend: HEAD always answers, POSTs replay in order."""

    def __init__(self, *post_responses, probe_status: int = 200) -> None:  # noqa: ANN002
        self.post_responses = list(post_responses)
        self.probe_status = probe_status
        self.posts = 0
        self.before_reply = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "HEAD":
            return httpx.Response(self.probe_status)
        self.posts += 1
        if self.before_reply is not None:
            self.before_reply()
        item = self.post_responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return httpx.Response(200, json={"success": True, "data": {"transcription": item}})
        return httpx.Response(item)


@pytest.fixture
def build(make_question_source):  # noqa: ANN001
    def _build(device, store, service: SpeechService, question_source=None, **kwargs):  # noqa: ANN001, ANN003
        errors: list[tuple[str, str]] = []
        texts: list[tuple[int, str]] = []
        controller = InterviewRunController(
            interview_id=1,
            applicant_id=7,
            question_source=question_source or make_question_source(list(QUESTIONS)),
            answer_store=store,
            capture=AudioCaptureSession(device),
            transcriber=TranscriptionClient(
                "http://asr.test", transport=httpx.MockTransport(service)
            ),
            auth_token="tok",
            on_error=lambda c, m: errors.append((c, m)),
            on_text_change=lambda q, t: texts.append((q, t)),
            **kwargs,
        )
        return controller, errors, texts

    return _build


def _speak(controller: InterviewRunController, device, pcm: bytes = b"\x01\x00" * 160):  # noqa: ANN001
    assert controller.start_recording() is True
    device.last_track.emit(pcm)
    return controller.stop_recording()


# ---------------------------------------------------------------
# Loading
# ---------------------------------------------------------------

def test_load_sorts_questions_and_prefills_answers(fake_device, make_store, build) -> None:  # noqa: ANN001
    store = make_store({11: ExistingAnswer(id=55, question_id=11, text="already said")})
    controller, _, _ = build(fake_device, store, SpeechService())

    assert controller.load() is True

    assert controller.state == RunState.ANSWERING
    assert [q.id for q in controller.questions] == [11, 12, 13]
    assert controller.current_question.id == 11
    assert controller.answer_text == "already said"
    assert controller.progress == 1 / 3


def test_load_failure_is_reported(fake_device, answer_store, make_question_source, build) -> None:  # noqa: ANN001
    source = make_question_source([], fail=RuntimeError("HTTP 500"))
    controller, errors, _ = build(fake_device, answer_store, SpeechService(), question_source=source)

    assert controller.load() is False
    assert controller.state == RunState.LOADING
    assert controller.load_error == "HTTP 500"
    assert errors == [(LOAD_FAILED, "HTTP 500")]


def test_failed_probe_at_load_skips_doomed_uploads(fake_device, answer_store, build) -> None:  # noqa: ANN001
    service = SpeechService("never used", probe_status=404)
    controller, errors, _ = build(fake_device, answer_store, service)
    controller.load()

    attempt = _speak(controller, fake_device)

    assert attempt.reason == FailureReason.SERVICE_UNAVAILABLE
    assert service.posts == 0
    assert errors[-1][0] == TRANSCRIPTION_FAILED


# ---------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------

def test_happy_path_transcribes_saves_and_advances(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, errors, texts = build(fake_device, answer_store, SpeechService("hello world"))
    controller.load()

    attempt = _speak(controller, fake_device)

    assert attempt.status == AttemptStatus.SUCCEEDED
    assert controller.answer_text == "hello world"
    assert texts == [(11, "hello world")]
    assert fake_device.active_tracks == 0

    assert controller.next() is True
    assert answer_store.created == [(1, 11, 7, "hello world")]
    assert controller.current_question.id == 12
    assert errors == []


def test_service_down_then_recovered(fake_device, answer_store, build) -> None:  # noqa: ANN001
    service = SpeechService(500, "recovered answer")
    controller, errors, _ = build(fake_device, answer_store, service)
    controller.load()

    failed = _speak(controller, fake_device)

    assert failed.reason == FailureReason.SERVER_ERROR
    assert controller.answer_text == ""
    assert controller.asr_error
    assert errors[-1][0] == TRANSCRIPTION_FAILED

    short_circuited = _speak(controller, fake_device)
    assert short_circuited.reason == FailureReason.SERVICE_UNAVAILABLE
    assert service.posts == 1

    controller.retry_speech_recognition()
    assert controller.asr_error is None

    recovered = _speak(controller, fake_device)
    assert recovered.succeeded
    assert controller.answer_text == "recovered answer"
    assert service.posts == 2


def test_multi_take_accumulation(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, _, _ = build(fake_device, answer_store, SpeechService("foo", "bar"))
    controller.load()

    _speak(controller, fake_device)
    _speak(controller, fake_device)

    assert controller.answer_text == "foo bar"
    assert controller.take_count() == 2


def test_manual_edit_then_recording_appends(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, _, _ = build(fake_device, answer_store, SpeechService("spoken"))
    controller.load()

    controller.edit_answer("typed")
    _speak(controller, fake_device)

    assert controller.answer_text == "typed spoken"


def test_fallback_marker_is_opt_in(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, _, _ = build(
        fake_device, answer_store, SpeechService(503), insert_fallback_marker=True
    )
    controller.load()

    _speak(controller, fake_device)

    assert controller.answer_text == FALLBACK_MARKER


def test_timeout_leaves_speech_recognition_enabled(fake_device, answer_store, build) -> None:  # noqa: ANN001
    service = SpeechService(httpx.ReadTimeout("slow"), "after timeout")
    controller, _, _ = build(fake_device, answer_store, service)
    controller.load()

    first = _speak(controller, fake_device)
    second = _speak(controller, fake_device)

    assert first.reason == FailureReason.TIMEOUT
    assert second.succeeded
    assert controller.answer_text == "after timeout"


def test_empty_take_skips_transcription(fake_device, answer_store, build) -> None:  # noqa: ANN001
    service = SpeechService("unused")
    controller, _, _ = build(fake_device, answer_store, service)
    controller.load()

    controller.start_recording()
    attempt = controller.stop_recording()

    assert attempt.succeeded
    assert service.posts == 0
    assert controller.answer_text == ""


def test_takes_land_in_completion_order(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, _, _ = build(fake_device, answer_store, SpeechService("second", "first"))
    controller.load()
    capture = controller._capture

    capture.start()
    fake_device.last_track.emit(b"\x01\x00")
    first_take = capture.stop()
    capture.start()
    fake_device.last_track.emit(b"\x02\x00")
    second_take = capture.stop()

    controller.transcribe_take(second_take, 11)
    controller.transcribe_take(first_take, 11)

    assert controller.answer_for(11) == "second first"


# ---------------------------------------------------------------
# Device errors
# ---------------------------------------------------------------

def test_microphone_failure_is_reported_and_text_kept(make_device, answer_store, build) -> None:  # noqa: ANN001
    device = make_device(fail_on_open=MicrophoneUnavailable("Permission denied"))
    controller, errors, _ = build(device, answer_store, SpeechService())
    controller.load()
    controller.edit_answer("typed instead")

    assert controller.start_recording() is False

    assert controller.device_error == "Permission denied"
    assert errors == [(MICROPHONE_UNAVAILABLE, "Permission denied")]
    assert controller.answer_text == "typed instead"


# ---------------------------------------------------------------
# Navigation and saving
# ---------------------------------------------------------------

def test_last_question_next_saves_without_advancing(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, _, _ = build(fake_device, answer_store, SpeechService())
    controller.load()
    controller.next()
    controller.next()
    assert controller.is_last_question

    controller.edit_answer("final")
    assert controller.next() is False
    assert controller.next() is False

    assert answer_store.created[-1] == (1, 13, 7, "final")
    assert len(answer_store.created) == 3
    assert answer_store.updated == [(103, "final")]


def test_next_is_refused_while_recording(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, _, _ = build(fake_device, answer_store, SpeechService())
    controller.load()
    controller.start_recording()

    assert controller.next() is False
    assert controller.current_question.id == 11
    controller.close()


def test_next_resets_take_counter(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, _, _ = build(fake_device, answer_store, SpeechService("one"))
    controller.load()
    _speak(controller, fake_device)

    controller.next()

    assert controller.take_count() == 0
    assert controller.take_count(11) == 1
    assert controller._capture.take_count == 0


def test_failed_save_does_not_block_and_is_retried_on_finish(
    fake_device, answer_store, build  # noqa: ANN001
) -> None:
    controller, errors, _ = build(fake_device, answer_store, SpeechService())
    controller.load()
    controller.edit_answer("first answer")
    answer_store.failures.append(ConnectionError("backend down"))

    assert controller.next() is True
    assert controller.save_error
    assert errors[-1][0] == SAVE_FAILED
    assert controller.answer_for(11) == "first answer"

    controller.dismiss_save_error()
    assert controller.save_error is None

    controller.edit_answer("second answer")
    controller.next()
    controller.edit_answer("third answer")
    result = controller.finish()

    assert result.success is True
    assert controller.state == RunState.SUBMITTED
    assert (1, 11, 7, "first answer") in answer_store.created
    assert (1, 12, 7, "second answer") in answer_store.created
    assert (1, 13, 7, "third answer") in answer_store.created
    assert controller.save_error is None


def test_finish_submits_even_when_save_fails(fake_device, answer_store, build) -> None:  # noqa: ANN001
    controller, _, _ = build(fake_device, answer_store, SpeechService())
    controller.load()
    answer_store.failures.append(ConnectionError("backend down"))

    result = controller.finish()

    assert result.success is False
    assert controller.state == RunState.SUBMITTED
    assert controller.save_error


def test_finish_with_no_questions(fake_device, answer_store, make_question_source, build) -> None:  # noqa: ANN001
    controller, _, _ = build(
        fake_device, answer_store, SpeechService(), question_source=make_question_source([])
    )
    controller.load()

    assert controller.current_question is None
    assert controller.finish().success is True
    assert controller.state == RunState.SUBMITTED


# ---------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------

def test_close_without_stop_releases_microphone(fake_device, answer_store, build) -> None:  # noqa: ANN001
    with build(fake_device, answer_store, SpeechService())[0] as controller:
        controller.load()
        controller.start_recording()
        assert fake_device.active_tracks == 1

    assert fake_device.active_tracks == 0
    assert controller.state == RunState.CLOSED


def test_transcription_finishing_after_close_is_dropped(fake_device, answer_store, build) -> None:  # noqa: ANN001
    service = SpeechService("too late")
    controller, errors, texts = build(fake_device, answer_store, service)
    controller.load()
    service.before_reply = controller.close

    attempt = _speak(controller, fake_device)

    assert attempt.succeeded
    assert texts == []
    assert errors == []
    assert controller.state == RunState.CLOSED
    assert controller.answer_for(11) == ""


def test_close_racing_a_landing_transcription_never_notifies_closed_run(
    fake_device, answer_store, build  # noqa: ANN001
) -> None:
    controller, _, _ = build(fake_device, answer_store, SpeechService("racing"))
    controller.load()
    states_seen = []
    controller._on_text_change = lambda q, t: states_seen.append(controller.state)

    accumulator = controller._accumulator
    forward = accumulator.append
    closer = threading.Thread(target=controller.close, daemon=True)

    def append_while_closing(question_id: int, text: str) -> str:
        closer.start()
        closer.join(timeout=0.2)
        return forward(question_id, text)

    accumulator.append = append_while_closing

    attempt = _speak(controller, fake_device)
    closer.join(timeout=2.0)

    assert attempt.succeeded
    assert states_seen == [RunState.ANSWERING]
    assert controller.state == RunState.CLOSED
    assert controller.answer_for(11) == ""
    assert fake_device.active_tracks == 0
