"""Remote speech-to-text backend (OpenAI-compatible transcription endpoint)."""

import os
import time
import asyncio
import logging
from datetime import datetime
from typing import Optional, Tuple

import aiohttp

from .base import AbstractTranscriptionBackend
from ..errors import InvalidAudioError, NetworkError, NoCredentialError, RemoteAPIError
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.openai.com/v1/audio/transcriptions"


class WhisperAPIBackend(AbstractTranscriptionBackend):
    """Posts a clip as multipart/form-data and reads ``{"text": ...}`` back."""

    service_name = "Whisper API"

    def __init__(self,
                 api_key: Optional[str],
                 endpoint: str = DEFAULT_ENDPOINT,
                 model: str = "whisper-1",
                 language: str = "en",
                 response_format: str = "json",
                 timeout_seconds: float = 60.0):
        """Initialize the remote backend.

        Args:
            api_key: Bearer credential; None or empty makes every call fail with NoCredentialError
            endpoint: Transcription URL
            model: Backend model identifier sent as the ``model`` field
            language: Target language code
            response_format: Sent as ``response_format``; must yield JSON
            timeout_seconds: Total timeout for one request
        """
        super().__init__(language)
        self.api_key = api_key
        self.endpoint = endpoint
        self.model = model
        self.response_format = response_format
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        logger.info(f"WhisperAPIBackend initialized: {endpoint} model={model} language={language}")

    def build_form(self, audio_data: bytes, filename: str = "audio.wav") -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field("model", self.model)
        form.add_field("language", self.language)
        form.add_field("response_format", self.response_format)
        form.add_field("file", audio_data, filename=filename, content_type="audio/wav")
        return form

    async def transcribe_file(self,
                              chunk_id: str,
                              audio_path: str,
                              time_range: Optional[Tuple[float, float]] = None) -> TranscriptionResult:
        if not self.api_key:
            raise NoCredentialError("No API key configured for remote transcription")
        if time_range is not None:
            raise InvalidAudioError("Remote transcription needs an extracted clip, not a time range")

        try:
            with open(audio_path, "rb") as f:
                audio_data = f.read()
        except (IOError, OSError) as e:
            raise InvalidAudioError(f"Cannot read clip {audio_path}: {e}") from e
        if not audio_data:
            raise InvalidAudioError(f"Clip {audio_path} is empty")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        start_time = time.time()
        logger.debug(f"Chunk ID: {chunk_id}; posting {len(audio_data)} bytes to {self.endpoint}")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.endpoint, headers=headers,
                                        data=self.build_form(audio_data)) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.warning(f"Remote transcription HTTP {response.status} for {chunk_id}: "
                                       f"{error_text[:200]}")
                        raise RemoteAPIError(response.status, f"HTTP {response.status}")
                    payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Remote transcription timed out (chunk={chunk_id})") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Remote transcription transport error (chunk={chunk_id}): {e}") from e
        except ValueError as e:
            raise RemoteAPIError(200, f"Malformed JSON response: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("text"), str):
            raise RemoteAPIError(200, "Response has no 'text' field")

        processing_time = time.time() - start_time
        logger.debug(f"Remote transcription for {chunk_id} took {processing_time:.3f}s")
        return TranscriptionResult(
            text=payload["text"],
            processing_time=processing_time,
            timestamp=datetime.now(),
            service=self.service_name,
            language=self.language,
            chunk_id=chunk_id,
        )


def resolve_api_key(api_key: Optional[str], api_key_env: Optional[str]) -> Optional[str]:
    """Explicit key first, then the named environment variable."""
    if api_key:
        return api_key
    if api_key_env:
        return os.environ.get(api_key_env) or None
    return None
