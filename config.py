"""Simple JSON-based config store with environment overrides."""

from __future__ import annotations

import json
import os
from pathlib import Path

DEFAULT_API_BASE_URL = "http://localhost:3000/api"
DEFAULT_TRANSCRIPTION_URL = "http://localhost:3000/api/audio"
DEFAULT_REQUEST_TIMEOUT_S = 15.0


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "interview_voice" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_base_url(self) -> str:
        return self._get("api_base_url", "INTERVIEW_API_BASE_URL", DEFAULT_API_BASE_URL)

    def set_api_base_url(self, url: str) -> None:
        self._set("api_base_url", url)

    def get_transcription_url(self) -> str:
        return self._get(
            "transcription_url", "INTERVIEW_TRANSCRIPTION_URL", DEFAULT_TRANSCRIPTION_URL
        )

    def set_transcription_url(self, url: str) -> None:
        self._set("transcription_url", url)

    def get_auth_token(self) -> str:
        return self._get("auth_token", "INTERVIEW_AUTH_TOKEN", "")

    def set_auth_token(self, token: str) -> None:
        self._set("auth_token", token)

    def get_request_timeout_s(self) -> float:
        data = self._read_all()
        try:
            return float(data.get("request_timeout_s", DEFAULT_REQUEST_TIMEOUT_S))
        except (TypeError, ValueError):
            return DEFAULT_REQUEST_TIMEOUT_S

    def _get(self, key: str, env_var: str, default: str) -> str:
        env_value = os.getenv(env_var, "")
        if env_value:
            return env_value
        data = self._read_all()
        return str(data.get(key, default))

    def _set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
