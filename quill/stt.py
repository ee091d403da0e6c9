"""Speech-to-text through the OpenAI Whisper transcription API."""

from __future__ import annotations

import abc
import dataclasses
import json
import os
from dataclasses import dataclass

import requests

from quill.hallucinations import filter_hallucinations

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "whisper-1"

_TIMEOUT_SECONDS = 120.0
_MAX_RESPONSE_BYTES = 1024 * 1024


class TranscriptionError(Exception):
    """Raised when an audio file cannot be transcribed."""


class Transcriber(abc.ABC):
    """Converts an audio file to text."""

    @abc.abstractmethod
    def transcribe(self, audio_path: str | os.PathLike[str]) -> str:
        """Return the text spoken in the audio file at ``audio_path``."""


@dataclass
class OpenAIConfig:
    """Settings for the Whisper API; empty model and base URL take defaults."""

    api_key: str = ""
    model: str = ""
    language: str = ""
    prompt: str = ""
    base_url: str = ""


class OpenAITranscriber(Transcriber):
    """Transcriber backed by the OpenAI Whisper API."""

    def __init__(self, config: OpenAIConfig) -> None:
        self.config = dataclasses.replace(
            config,
            base_url=config.base_url or DEFAULT_BASE_URL,
            model=config.model or DEFAULT_MODEL,
        )

    def transcribe(self, audio_path: str | os.PathLike[str]) -> str:
        """Upload the audio file and return the filtered transcription."""
        path = os.fspath(audio_path)
        try:
            audio = open(path, "rb")
        except OSError as exc:
            raise TranscriptionError(f"open audio file: {exc}") from exc

        fields = {"model": self.config.model}
        if self.config.language:
            fields["language"] = self.config.language
        if self.config.prompt:
            fields["prompt"] = self.config.prompt

        url = self.config.base_url + "/audio/transcriptions"
        with audio:
            try:
                response = requests.post(
                    url,
                    headers={"Authorization": f"Bearer {self.config.api_key}"},
                    data=fields,
                    files={"file": (os.path.basename(path), audio)},
                    timeout=_TIMEOUT_SECONDS,
                    stream=True,
                )
            except requests.RequestException as exc:
                raise TranscriptionError(f"whisper API request failed: {exc}") from exc

        with response:
            try:
                body = _read_limited(response, _MAX_RESPONSE_BYTES)
            except requests.RequestException as exc:
                raise TranscriptionError(f"read response: {exc}") from exc

        if response.status_code != 200:
            text = body.decode("utf-8", errors="replace")
            raise TranscriptionError(f"whisper API returned {response.status_code}: {text}")

        return filter_hallucinations(_decode_text(body))


def _read_limited(response: requests.Response, limit: int) -> bytes:
    body = bytearray()
    for chunk in response.iter_content(chunk_size=64 * 1024):
        body.extend(chunk)
        if len(body) >= limit:
            break
    return bytes(body[:limit])


def _decode_text(body: bytes) -> str:
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise TranscriptionError(f"decode response: {exc}") from exc
    if data is None:
        return ""
    if not isinstance(data, dict):
        raise TranscriptionError("decode response: expected a JSON object")
    text = data.get("text")
    if text is None:
        return ""
    if not isinstance(text, str):
        raise TranscriptionError("decode response: field 'text' is not a string")
    return text