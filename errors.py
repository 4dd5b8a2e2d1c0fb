"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

MICROPHONE_UNAVAILABLE = "MICROPHONE_UNAVAILABLE"
CONVERSION_UNSUPPORTED = "CONVERSION_UNSUPPORTED"
DECODE_FAILED = "DECODE_FAILED"
TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
SAVE_FAILED = "SAVE_FAILED"
LOAD_FAILED = "LOAD_FAILED"

ERROR_MESSAGES = {
    MICROPHONE_UNAVAILABLE: "Microphone is unavailable. Check permissions and try again.",
    CONVERSION_UNSUPPORTED: "Audio conversion is not supported on this machine.",
    DECODE_FAILED: "The recording could not be decoded.",
    TRANSCRIPTION_FAILED: "Speech recognition failed. Type your answer or retry.",
    SAVE_FAILED: "Answer could not be saved. It will be retried on the next step.",
    LOAD_FAILED: "Interview could not be loaded.",
}

# Keyed by FailureReason value.
REASON_MESSAGES = {
    "SERVICE_UNAVAILABLE": "Speech recognition is not available. Please type your answer manually.",
    "NOT_FOUND": "Speech recognition endpoint was not found on the server.",
    "SERVER_ERROR": "Speech recognition service returned a server error.",
    "TIMEOUT": "Transcription timed out. Try a shorter recording.",
    "NETWORK_ERROR": "Network connection failed. Check your connection.",
    "UNKNOWN": "Audio transcription failed.",
}


class InterviewError(Exception):
    code = ""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(self.code, self.code))
        self.message = str(self)


class MicrophoneUnavailable(InterviewError):
    code = MICROPHONE_UNAVAILABLE


class ConversionUnsupported(InterviewError):
    code = CONVERSION_UNSUPPORTED


class DecodeFailed(InterviewError):
    code = DECODE_FAILED


class TranscriptionError(InterviewError):
    code = TRANSCRIPTION_FAILED

    def __init__(self, reason: str, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or REASON_MESSAGES.get(reason, REASON_MESSAGES["UNKNOWN"]))
