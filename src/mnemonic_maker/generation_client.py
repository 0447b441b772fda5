"""
Generation service for images and speech using the OpenAI API.
Each call is a single request/response exchange; retries are layered on top.
"""

import base64
import binascii
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from .errors import MalformedResponseError, NetworkError, RemoteServiceError

logger = logging.getLogger(__name__)


class GenerationService(ABC):
    """Abstract base class for generation services."""

    @abstractmethod
    async def generate_image(self, prompt: str, size: str, quality: str,
                             output_format: str = "jpeg") -> bytes:
        """Generate an image and return its binary payload."""
        pass

    @abstractmethod
    async def synthesize_speech(self, text: str, voice: str, format: str, model: str,
                                instructions: Optional[str] = None) -> bytes:
        """Synthesize speech and return the raw audio bytes."""
        pass

    async def aclose(self):
        """Release network resources held by the service."""
        pass


def _error_message(error: openai.APIStatusError) -> str:
    body = error.body
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return error.message


class OpenAIGenerationClient(GenerationService):
    """OpenAI implementation for image generation and text-to-speech."""

    def __init__(self, api_key: str, base_url: Optional[str] = None,
                 image_model: str = "gpt-image-1", timeout: float = 120.0,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.image_model = image_model
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def generate_image(self, prompt: str, size: str, quality: str,
                             output_format: str = "jpeg") -> bytes:
        """Generate an image using the images endpoint."""
        logger.debug("Requesting %s image (%s, %s)", size, quality, output_format)
        try:
            response = await self._client.images.generate(
                model=self.image_model,
                prompt=prompt,
                size=size,
                quality=quality,
                output_format=output_format,
                n=1,
            )
        except openai.APIStatusError as e:
            raise RemoteServiceError(e.status_code, _error_message(e)) from e
        except openai.APIConnectionError as e:
            raise NetworkError(f"Image request failed: {e}") from e
        except (openai.APIResponseValidationError, json.JSONDecodeError) as e:
            raise MalformedResponseError(f"Malformed image response: {e}") from e

        data = getattr(response, "data", None) or []
        b64_payload = data[0].b64_json if data else None
        if not b64_payload:
            raise MalformedResponseError("Malformed image response: missing base64 payload")

        try:
            return base64.b64decode(b64_payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedResponseError(f"Malformed image response: {e}") from e

    async def synthesize_speech(self, text: str, voice: str, format: str, model: str,
                                instructions: Optional[str] = None) -> bytes:
        """Synthesize speech using the audio speech endpoint."""
        logger.debug("Requesting %s speech with voice %s", format, voice)
        params: Dict[str, Any] = {
            "model": model,
            "voice": voice,
            "input": text,
            "response_format": format,
        }
        if instructions:
            params["instructions"] = instructions

        try:
            response = await self._client.audio.speech.create(**params)
        except openai.APIStatusError as e:
            raise RemoteServiceError(e.status_code, _error_message(e)) from e
        except openai.APIConnectionError as e:
            raise NetworkError(f"Speech request failed: {e}") from e

        audio = response.content
        if not audio:
            raise MalformedResponseError("Malformed speech response: empty audio payload")
        return audio

    async def aclose(self):
        await self._client.close()


class MockGenerationClient(GenerationService):
    """Mock generation service for testing."""

    def __init__(self, image_bytes: bytes = b"\xff\xd8\xff\xe0mock-jpeg",
                 audio_bytes: bytes = b"ID3mock-mp3",
                 image_error: Optional[Exception] = None,
                 audio_error: Optional[Exception] = None):
        self.image_bytes = image_bytes
        self.audio_bytes = audio_bytes
        self.image_error = image_error
        self.audio_error = audio_error
        self.image_prompts: List[str] = []
        self.speech_inputs: List[str] = []

    @property
    def call_count(self) -> int:
        return len(self.image_prompts) + len(self.speech_inputs)

    async def generate_image(self, prompt: str, size: str, quality: str,
                             output_format: str = "jpeg") -> bytes:
        """Mock image generation."""
        self.image_prompts.append(prompt)
        if self.image_error is not None:
            raise self.image_error
        return self.image_bytes

    async def synthesize_speech(self, text: str, voice: str, format: str, model: str,
                                instructions: Optional[str] = None) -> bytes:
        """Mock speech synthesis."""
        self.speech_inputs.append(text)
        if self.audio_error is not None:
            raise self.audio_error
        return self.audio_bytes


def create_generation_client(api_key: str, base_url: Optional[str] = None,
                             image_model: str = "gpt-image-1") -> GenerationService:
    """Factory function to create the generation service."""
    return OpenAIGenerationClient(api_key, base_url=base_url, image_model=image_model)


def create_mock_generation_client(**kwargs) -> MockGenerationClient:
    """Factory function to create mock generation service for testing."""
    return MockGenerationClient(**kwargs)
