"""Audio format normalization.

Recordings arrive in whatever container the capture backend negotiated.
The transcription service wants 16-bit mono WAV, so anything else is decoded
with pydub (ffmpeg underneath) and re-encoded.  WAV input is passed through
untouched.
"""

from __future__ import annotations

import io
import logging
import wave

import numpy as np

from errors import ConversionUnsupported, DecodeFailed
from models import AudioContainer, NormalizedAudio, RecordedBlob

try:
    from pydub import AudioSegment
    from pydub.exceptions import CouldntDecodeError
    from pydub.utils import which
except Exception:  # pragma: no cover
    AudioSegment = None  # type: ignore
    CouldntDecodeError = None  # type: ignore
    which = None  # type: ignore

logger = logging.getLogger(__name__)

CANONICAL_SAMPLE_RATE = 16000
CANONICAL_SAMPLE_WIDTH = 2


def pcm_to_wav_bytes(
    pcm: bytes,
    sample_rate: int = CANONICAL_SAMPLE_RATE,
    channels: int = 1,
    sample_width: int = CANONICAL_SAMPLE_WIDTH,
) -> bytes:
    """Wrap raw PCM bytes in a RIFF/WAVE header."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


def quantize_pcm16(samples: np.ndarray) -> bytes:
    """Clamp float samples to [-1, 1] and quantize to little-endian int16.

    Negative values scale by 0x8000 and positive by 0x7FFF so both ends of
    the range map exactly onto the int16 limits.
    """
    clamped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(clamped < 0, clamped * 0x8000, clamped * 0x7FFF)
    return np.trunc(scaled).astype("<i2").tobytes()


class AudioFormatConverter:
    def __init__(self, sample_rate: int = CANONICAL_SAMPLE_RATE) -> None:
        self.sample_rate = sample_rate

    def is_conversion_supported(self) -> bool:
        if AudioSegment is None or which is None:
            return False
        return which(AudioSegment.converter) is not None

    def convert(self, blob: RecordedBlob) -> NormalizedAudio:
        if blob.container is AudioContainer.WAV:
            return self._passthrough(blob)

        if not self.is_conversion_supported():
            raise ConversionUnsupported("No audio decoder available (install ffmpeg)")

        samples, rate = self._decode(blob)
        pcm = quantize_pcm16(samples[:, 0])
        data = pcm_to_wav_bytes(pcm, sample_rate=rate, channels=1)
        logger.debug(
            "Converted %s to WAV: %d -> %d bytes",
            blob.container.mime_type,
            len(blob.data),
            len(data),
        )
        return NormalizedAudio(data=data, sample_rate_hz=rate, channels=1)

    def _passthrough(self, blob: RecordedBlob) -> NormalizedAudio:
        try:
            with wave.open(io.BytesIO(blob.data), "rb") as wf:
                rate = wf.getframerate()
                channels = wf.getnchannels()
        except (wave.Error, EOFError) as exc:
            raise DecodeFailed(f"Invalid WAV header: {exc}") from exc
        return NormalizedAudio(data=blob.data, sample_rate_hz=rate, channels=channels)

    def _decode(self, blob: RecordedBlob) -> tuple[np.ndarray, int]:
        """Decode ``blob`` into a float matrix of shape (frames, channels)."""
        if not blob.data:
            raise DecodeFailed("Recording is empty")
        try:
            segment = AudioSegment.from_file(
                io.BytesIO(blob.data), format=blob.container.ffmpeg_format
            )
            segment = segment.set_frame_rate(self.sample_rate)
        except Exception as exc:
            if CouldntDecodeError is not None and isinstance(exc, CouldntDecodeError):
                raise DecodeFailed(f"Decoder rejected the recording: {exc}") from exc
            raise DecodeFailed(f"Audio decoding failed: {exc}") from exc

        channels = int(segment.channels)
        raw = np.array(segment.get_array_of_samples(), dtype=np.float64)
        if channels < 1 or raw.size == 0 or raw.size % channels:
            raise DecodeFailed("Decoded audio is empty or malformed")
        full_scale = float(1 << (8 * int(segment.sample_width) - 1))
        return raw.reshape(-1, channels) / full_scale, int(segment.frame_rate)
