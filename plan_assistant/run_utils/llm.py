import logging
from typing import Any, AsyncIterator, Optional, Protocol

import openai
from openai import AsyncOpenAI

from plan_assistant.config import SYSTEM_INSTRUCTIONS, Settings
from plan_assistant.run_utils.metrics import add_tokens
from plan_assistant.utils.errors import UpstreamTransportError

logger = logging.getLogger(__name__)

TEXT_DELTA_EVENT = "response.output_text.delta"


class TextStream(Protocol):
    """Text deltas of one streamed model answer; must be closed when done."""

    def __aiter__(self) -> AsyncIterator[str]: ...

    async def aclose(self) -> None: ...


class PlannerLLM(Protocol):
    async def complete(self, prompt: str, log_prefix: str = "") -> str: ...

    async def open_stream(self, prompt: str, log_prefix: str = "") -> TextStream: ...


def _transport_error(e: Exception) -> UpstreamTransportError:
    status = getattr(e, "status_code", None)
    message = getattr(e, "message", None) or str(e) or "Unknown error"
    return UpstreamTransportError(f"OpenAI API error: {message}", upstream_status=status)


class OpenAITextStream:
    """Keeps only output-text deltas of a Responses API event stream."""

    def __init__(self, stream: Any, log_prefix: str = ""):
        self._stream = stream
        self._log_prefix = log_prefix
        self._closed = False

    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            async for event in self._stream:
                if getattr(event, "type", None) != TEXT_DELTA_EVENT:
                    continue
                delta = getattr(event, "delta", None)
                if delta:
                    yield delta
        except (openai.APIStatusError, openai.APIConnectionError) as e:
            raise _transport_error(e) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._stream.close()
        logger.debug(f"{self._log_prefix} upstream stream released")


class OpenAIPlannerLLM:
    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.model = settings.openai_model
        self.temperature = settings.temperature
        # Timeout and retries apply per call; transient failures are retried
        # by the SDK itself.
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )

    async def complete(self, prompt: str, log_prefix: str = "") -> str:
        logger.debug(
            f"{log_prefix} Calling OpenAI API model={self.model} temperature={self.temperature}"
        )
        try:
            resp = await self.client.responses.create(
                model=self.model,
                input=prompt,
                instructions=SYSTEM_INSTRUCTIONS,
                temperature=self.temperature,
            )
        except (openai.APIStatusError, openai.APIConnectionError) as e:
            raise _transport_error(e) from e

        try:
            add_tokens(log_prefix, "generate", resp.usage)
        except Exception:
            pass
        return resp.output_text or ""

    async def open_stream(self, prompt: str, log_prefix: str = "") -> TextStream:
        logger.debug(
            f"{log_prefix} Calling OpenAI API model={self.model} temperature={self.temperature} stream=True"
        )
        try:
            stream = await self.client.responses.create(
                model=self.model,
                input=prompt,
                instructions=SYSTEM_INSTRUCTIONS,
                temperature=self.temperature,
                stream=True,
            )
        except (openai.APIStatusError, openai.APIConnectionError) as e:
            raise _transport_error(e) from e
        return OpenAITextStream(stream, log_prefix)
