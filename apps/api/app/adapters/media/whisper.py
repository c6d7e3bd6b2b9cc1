"""OpenAI Whisper transcription adapter."""

from __future__ import annotations

import logging

from openai import AsyncOpenAI, OpenAIError

from app.adapters.media.base import Transcriber, TranscriptionError, TranscriptionResult, pcm_to_wav

logger = logging.getLogger(__name__)


class WhisperTranscriber(Transcriber):
    def __init__(self, *, api_key: str | None, model: str = "whisper-1", client: AsyncOpenAI | None = None) -> None:
        self._api_key = api_key
        self._model = model
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise TranscriptionError("OpenAI API key is not configured")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def transcribe(self, pcm: bytes) -> TranscriptionResult:
        client = self._get_client()
        try:
            response = await client.audio.transcriptions.create(
                model=self._model,
                file=("audio.wav", pcm_to_wav(pcm), "audio/wav"),
                response_format="verbose_json",
            )
        except OpenAIError as exc:
            raise TranscriptionError(str(exc) or type(exc).__name__) from exc

        text = getattr(response, "text", "") or ""
        logger.info("transcription.completed model=%s characters=%s", self._model, len(text))
        return TranscriptionResult(
            text=text,
            duration_seconds=float(getattr(response, "duration", 0) or 0),
            language=getattr(response, "language", None) or None,
        )


__all__ = ["WhisperTranscriber"]
