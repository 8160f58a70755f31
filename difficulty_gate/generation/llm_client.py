"""
Text generation providers.

The pipeline only talks to the TextGenerator interface. Two backends are
provided:

- GeminiGenerator: Google Generative AI SDK (``google-generativeai``).
- OpenAICompatibleGenerator: any ``/chat/completions`` endpoint over httpx.

Both treat the provider as unreliable. Transient failures (429, 503,
timeouts) are retried with exponential backoff and jitter up to a small
fixed budget, then surface as ProviderUnavailableError. Anything else
fails immediately as a non-transient ProviderUnavailableError.
"""
from __future__ import annotations

import asyncio
import base64
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal

import google.api_core.exceptions
import httpx
from loguru import logger

from difficulty_gate.errors import ProviderUnavailableError

RETRYABLE_STATUS = frozenset({429, 503})

LLMBackend = Literal["none", "gemini", "openai_compatible"]


@dataclass(frozen=True)
class LLMConfig:
    """Immutable provider configuration, built from settings."""

    backend: LLMBackend = "none"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    openai_base_url: str = "https://api.gradient.ai/v1"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_output_tokens: int = 900
    max_retries: int = 3
    base_delay: float = 0.5
    timeout_seconds: float = 30.0


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Exponential delay with jitter for the given zero-based attempt."""
    return base_delay * (2**attempt) + random.uniform(0, base_delay)


class TextGenerator(ABC):
    """Interface to an external text generation capability."""

    name: str = "generator"

    @abstractmethod
    async def generate_text(self, prompt: str, system_instruction: str | None = None) -> str:
        """Return the provider's raw text reply."""

    async def generate_text_from_image(
        self,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        system_instruction: str | None = None,
    ) -> str:
        raise ProviderUnavailableError(
            f"{self.name} does not accept image input", transient=False, reason="no_image_support"
        )

    async def close(self) -> None:
        return None


# =============================================================================
# Gemini
# =============================================================================


class GeminiGenerator(TextGenerator):
    """Gemini through the google-generativeai SDK."""

    name = "gemini"
    TRANSIENT_ERRORS = (
        google.api_core.exceptions.ResourceExhausted,
        google.api_core.exceptions.ServiceUnavailable,
        google.api_core.exceptions.DeadlineExceeded,
    )

    def __init__(self, config: LLMConfig):
        if not config.gemini_api_key:
            raise ProviderUnavailableError(
                "Gemini API key required", transient=False, reason="missing_api_key"
            )
        self.config = config
        self.model_name = config.gemini_model.removeprefix("models/")
        self._models: dict[str | None, Any] = {}

    def _model(self, system_instruction: str | None):
        if system_instruction not in self._models:
            import google.generativeai as genai

            genai.configure(api_key=self.config.gemini_api_key)
            self._models[system_instruction] = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=system_instruction,
            )
        return self._models[system_instruction]

    async def generate_text(self, prompt: str, system_instruction: str | None = None) -> str:
        return await self._generate(prompt, system_instruction)

    async def generate_text_from_image(
        self,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        system_instruction: str | None = None,
    ) -> str:
        contents = [{"mime_type": mime_type, "data": image_bytes}, prompt]
        return await self._generate(contents, system_instruction)

    async def _generate(self, contents: Any, system_instruction: str | None) -> str:
        model = self._model(system_instruction)
        retries = self.config.max_retries

        for attempt in range(retries + 1):
            try:
                response = await asyncio.to_thread(
                    model.generate_content,
                    contents,
                    generation_config={
                        "temperature": self.config.temperature,
                        "max_output_tokens": self.config.max_output_tokens,
                    },
                )
                return _gemini_text(response)

            except self.TRANSIENT_ERRORS as e:
                if attempt < retries:
                    delay = backoff_delay(self.config.base_delay, attempt)
                    logger.warning(
                        f"Gemini busy ({type(e).__name__}) on attempt {attempt + 1}/{retries + 1}. "
                        f"Retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ProviderUnavailableError(
                    f"Gemini unavailable after {retries + 1} attempts", reason=type(e).__name__
                ) from e

            except google.api_core.exceptions.GoogleAPICallError as e:
                logger.error(f"Gemini request failed: {e}")
                raise ProviderUnavailableError(
                    f"Gemini request failed: {e}", transient=False, reason=type(e).__name__
                ) from e

        raise ProviderUnavailableError("Gemini retry budget exhausted")


def _gemini_text(response: Any) -> str:
    # .text raises ValueError when the reply was blocked or has no parts
    try:
        return response.text or ""
    except ValueError:
        logger.warning("Gemini returned no text parts")
        return ""


# =============================================================================
# OpenAI-compatible chat completions
# =============================================================================


class OpenAICompatibleGenerator(TextGenerator):
    """Chat-completions client over httpx."""

    name = "openai_compatible"

    def __init__(self, config: LLMConfig, client: httpx.AsyncClient | None = None):
        if not config.openai_api_key:
            raise ProviderUnavailableError(
                "API key required for the chat-completions provider",
                transient=False,
                reason="missing_api_key",
            )
        self.config = config
        self.endpoint = chat_completions_url(config.openai_base_url)
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            follow_redirects=True,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def generate_text(self, prompt: str, system_instruction: str | None = None) -> str:
        return await self._complete(prompt, system_instruction)

    async def generate_text_from_image(
        self,
        prompt: str,
        image_bytes: bytes,
        mime_type: str,
        system_instruction: str | None = None,
    ) -> str:
        data_url = f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"
        content = [
            {"type": "text", "text": prompt},
            {"type": "image_url", "image_url": {"url": data_url}},
        ]
        return await self._complete(content, system_instruction)

    async def _complete(self, content: Any, system_instruction: str | None) -> str:
        messages: list[dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": content})
        payload = {
            "model": self.config.openai_model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_output_tokens,
        }
        headers = {"Authorization": f"Bearer {self.config.openai_api_key}"}

        retries = self.config.max_retries
        last_error: Exception | None = None

        for attempt in range(retries + 1):
            try:
                response = await self.client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
                return extract_message_text(response.json())

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(f"Chat completion timeout on attempt {attempt + 1}/{retries + 1}")

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status not in RETRYABLE_STATUS:
                    logger.error(f"Chat completion client error: {status}")
                    raise ProviderUnavailableError(
                        f"Chat completion failed with HTTP {status}",
                        transient=False,
                        reason=f"http_{status}",
                    ) from e
                last_error = e
                logger.warning(
                    f"Chat completion busy (HTTP {status}) on attempt {attempt + 1}/{retries + 1}"
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(f"Chat completion request error on attempt {attempt + 1}: {e}")

            if attempt < retries:
                await asyncio.sleep(backoff_delay(self.config.base_delay, attempt))

        raise ProviderUnavailableError(
            f"Chat completion unavailable after {retries + 1} attempts",
            reason=type(last_error).__name__ if last_error else None,
        ) from last_error


def chat_completions_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.endswith("/chat/completions"):
        return base
    return f"{base}/chat/completions"


def extract_message_text(data: dict[str, Any]) -> str:
    """Pull the assistant text out of a chat-completions reply.

    ``content`` may be a plain string or a list of typed parts.
    """
    choices = data.get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return ""


def create_text_generator(config: LLMConfig) -> TextGenerator | None:
    """Build the configured generator, or None when generation is disabled."""
    if config.backend == "none":
        return None
    if config.backend == "gemini":
        if not config.gemini_api_key:
            logger.warning("LLM_BACKEND=gemini but GEMINI_API_KEY is not set; generation disabled")
            return None
        return GeminiGenerator(config)
    if not config.openai_api_key:
        logger.warning("LLM_BACKEND=openai_compatible but no API key is set; generation disabled")
        return None
    return OpenAICompatibleGenerator(config)
