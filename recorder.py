"""Microphone capture: sounddevice backend and the recording state machine."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional, Sequence

import numpy as np

from converter import AudioFormatConverter, pcm_to_wav_bytes
from errors import ConversionUnsupported, DecodeFailed, MicrophoneUnavailable
from interfaces import AudioTrack, ChunkCallback, MicrophoneDevice
from models import (
    AudioContainer,
    CaptureConstraints,
    RecordedBlob,
    RecordedTake,
    SessionState,
)

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]

# Ranked by preference; the first one the device supports wins.
DEFAULT_CONTAINER_CANDIDATES = (
    AudioContainer.WAV,
    AudioContainer.WEBM_OPUS,
    AudioContainer.WEBM,
    AudioContainer.MP4,
    AudioContainer.OGG_OPUS,
)


class SoundDeviceTrack:
    def __init__(self, on_chunk: ChunkCallback) -> None:
        self._on_chunk = on_chunk
        self._stream: Any = None
        self._running = False

    @property
    def active(self) -> bool:
        return self._stream is not None

    def attach(self, stream: Any) -> None:
        self._stream = stream

    def start(self) -> None:
        if self._stream is None or self._running:
            return
        self._stream.start()
        self._running = True

    def pause(self) -> None:
        # PortAudio has no pause; stopping keeps the stream open for resume.
        self.stop()

    def resume(self) -> None:
        self.start()

    def stop(self) -> None:
        if self._stream is None or not self._running:
            return
        self._running = False
        self._stream.stop()

    def release(self) -> None:
        stream, self._stream = self._stream, None
        self._running = False
        if stream is not None:
            stream.close()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running:
            return
        if status:
            logger.debug("Input stream status: %s", status)
        self._on_chunk(np.asarray(indata, dtype=np.int16).tobytes())


class SoundDeviceMicrophone:
    """PortAudio microphone; records raw PCM16, so it only offers WAV."""

    def __init__(self, chunk_ms: int = 100, device: Optional[int] = None) -> None:
        self.chunk_ms = chunk_ms
        self.device = device

    def is_supported(self, container: AudioContainer) -> bool:
        return sd is not None and container is AudioContainer.WAV

    def open(
        self,
        constraints: CaptureConstraints,
        container: AudioContainer,
        on_chunk: ChunkCallback,
    ) -> SoundDeviceTrack:
        if sd is None:
            raise MicrophoneUnavailable("sounddevice is not installed")
        if not self.is_supported(container):
            raise MicrophoneUnavailable(f"{container.mime_type} is not supported")

        track = SoundDeviceTrack(on_chunk)
        blocksize = int(constraints.sample_rate * (self.chunk_ms / 1000.0))
        try:
            sd.check_input_settings(
                device=self.device,
                samplerate=constraints.sample_rate,
                channels=constraints.channels,
                dtype="int16",
            )
            stream = sd.InputStream(
                device=self.device,
                samplerate=constraints.sample_rate,
                channels=constraints.channels,
                dtype="int16",
                blocksize=blocksize,
                callback=track._on_audio,
            )
        except Exception as exc:
            raise MicrophoneUnavailable(f"Microphone error: {exc}") from exc
        track.attach(stream)
        return track


class AudioCaptureSession:
    """One microphone, many recording cycles.

    Each ``start()``/``stop()`` pair yields a ``RecordedTake``.  The device
    track is released on stop, on a failed start, and on ``close()``, so a
    ``with`` block never leaks the microphone.
    """

    def __init__(
        self,
        device: MicrophoneDevice,
        converter: Optional[AudioFormatConverter] = None,
        constraints: Optional[CaptureConstraints] = None,
        candidates: Sequence[AudioContainer] = DEFAULT_CONTAINER_CANDIDATES,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self._device = device
        self._converter = converter or AudioFormatConverter()
        self._constraints = constraints or CaptureConstraints()
        self._candidates = tuple(candidates)
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._track: Optional[AudioTrack] = None
        self._container: Optional[AudioContainer] = None
        self._chunks: List[bytes] = []
        self.take_count = 0
        self.rejected_chunks = 0

    def __enter__(self) -> "AudioCaptureSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def container(self) -> Optional[AudioContainer]:
        return self._container

    @property
    def is_recording(self) -> bool:
        return self._state in (SessionState.RECORDING, SessionState.PAUSED)

    @property
    def active_tracks(self) -> int:
        track = self._track
        return 1 if track is not None and track.active else 0

    def negotiate_container(self) -> AudioContainer:
        for container in self._candidates:
            if self._device.is_supported(container):
                return container
        raise MicrophoneUnavailable("No supported recording format")

    def start(self) -> None:
        with self._lock:
            if self._state != SessionState.IDLE:
                return
            self._chunks = []
            try:
                self._container = self.negotiate_container()
                self._track = self._device.open(
                    self._constraints, self._container, self._on_chunk
                )
                self._transition(SessionState.RECORDING)
                self._track.start()
                return
            except Exception as exc:
                failure = exc
                track = self._detach_track()
                self._chunks = []
                self._transition(SessionState.ERROR)

        self._halt_and_release(track)
        with self._lock:
            self._transition(SessionState.IDLE)
        logger.warning("Could not start recording: %s", failure)
        if isinstance(failure, MicrophoneUnavailable):
            raise failure
        raise MicrophoneUnavailable(f"Microphone error: {failure}") from failure

    def pause(self) -> None:
        with self._lock:
            if self._state != SessionState.RECORDING or self._track is None:
                return
            track = self._track
            self._transition(SessionState.PAUSED)
        # Stream calls wait for an in-flight callback, which needs the lock.
        track.pause()

    def resume(self) -> None:
        with self._lock:
            if self._state != SessionState.PAUSED or self._track is None:
                return
            self._transition(SessionState.RECORDING)
            self._track.resume()

    def stop(self) -> Optional[RecordedTake]:
        with self._lock:
            if self._state not in (SessionState.RECORDING, SessionState.PAUSED):
                return None
            self._transition(SessionState.STOPPING)
            track = self._detach_track()

        self._halt_and_release(track)

        with self._lock:
            chunks, self._chunks = self._chunks, []
            container = self._container or AudioContainer.WAV
            self.take_count += 1
            take_number = self.take_count
            self._transition(SessionState.PROCESSING)

        try:
            take = self._finalize(chunks, container, take_number)
        except Exception:
            with self._lock:
                self._transition(SessionState.ERROR)
                self._transition(SessionState.IDLE)
            raise

        with self._lock:
            self._transition(SessionState.STOPPED)
            self._transition(SessionState.IDLE)
        return take

    def reset_takes(self) -> None:
        with self._lock:
            if self.is_recording:
                return
            self.take_count = 0

    def close(self) -> None:
        """Abandon any in-progress cycle and release the microphone."""
        with self._lock:
            was_recording = self.is_recording
            if was_recording:
                self._transition(SessionState.STOPPING)
            track = self._detach_track()
            self._chunks = []

        self._halt_and_release(track)
        if was_recording:
            with self._lock:
                self._transition(SessionState.IDLE)

    def _on_chunk(self, chunk: bytes) -> None:
        if not chunk:
            return
        with self._lock:
            if self._state != SessionState.RECORDING:
                self.rejected_chunks += 1
                return
            self._chunks.append(bytes(chunk))

    def _finalize(
        self, chunks: List[bytes], container: AudioContainer, take_number: int
    ) -> RecordedTake:
        raw = b"".join(chunks)
        if container is AudioContainer.WAV:
            data = pcm_to_wav_bytes(
                raw,
                sample_rate=self._constraints.sample_rate,
                channels=self._constraints.channels,
            )
        else:
            data = raw
        blob = RecordedBlob(data=data, container=container)

        audio = None
        conversion_error = ""
        if raw:
            try:
                audio = self._converter.convert(blob)
            except (ConversionUnsupported, DecodeFailed) as exc:
                logger.warning("Sending unconverted %s audio: %s", container.mime_type, exc)
                conversion_error = exc.code
        return RecordedTake(
            blob=blob,
            audio=audio,
            take_number=take_number,
            captured_bytes=len(raw),
            conversion_error=conversion_error,
        )

    def _detach_track(self) -> Optional[AudioTrack]:
        track, self._track = self._track, None
        return track

    @staticmethod
    def _halt_and_release(track: Optional[AudioTrack]) -> None:
        if track is None:
            return
        try:
            track.stop()
        except Exception as exc:
            logger.warning("Recorder did not stop cleanly: %s", exc)
        finally:
            try:
                track.release()
            except Exception as exc:
                logger.warning("Failed to release microphone track: %s", exc)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
