from types import SimpleNamespace

import httpx
import openai
import pytest

from plan_assistant.run_utils.llm import TEXT_DELTA_EVENT, OpenAIPlannerLLM, OpenAITextStream
from plan_assistant.utils.errors import UpstreamTransportError

OPENAI_URL = "https://api.openai.com/v1/responses"


class FakeEventStream:
    def __init__(self, events, error=None):
        self.events = events
        self.error = error
        self.close_calls = 0

    async def __aiter__(self):
        for event in self.events:
            yield event
        if self.error is not None:
            raise self.error

    async def close(self):
        self.close_calls += 1


class FakeResponses:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def fake_client(responses):
    return SimpleNamespace(responses=responses)


def rate_limit_error():
    response = httpx.Response(429, request=httpx.Request("POST", OPENAI_URL))
    return openai.RateLimitError("Rate limit reached", response=response, body=None)


@pytest.mark.asyncio
async def test_complete_sends_prompt_and_returns_text(settings):
    responses = FakeResponses(SimpleNamespace(output_text='{"goal": "x"}', usage=None))
    llm = OpenAIPlannerLLM(settings, client=fake_client(responses))

    text = await llm.complete("plan this")

    assert text == '{"goal": "x"}'
    call = responses.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["input"] == "plan this"
    assert call["temperature"] == 0.7
    assert "stream" not in call


@pytest.mark.asyncio
async def test_complete_maps_rate_limit_to_429(settings):
    llm = OpenAIPlannerLLM(settings, client=fake_client(FakeResponses(error=rate_limit_error())))

    with pytest.raises(UpstreamTransportError) as exc_info:
        await llm.complete("plan this")

    assert exc_info.value.status_code == 429
    assert exc_info.value.upstream_status == 429
    assert exc_info.value.message.startswith("OpenAI API error:")


@pytest.mark.asyncio
async def test_complete_maps_connection_error_to_500(settings):
    error = openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL))
    llm = OpenAIPlannerLLM(settings, client=fake_client(FakeResponses(error=error)))

    with pytest.raises(UpstreamTransportError) as exc_info:
        await llm.complete("plan this")

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_stream_keeps_only_text_deltas(settings):
    events = [
        SimpleNamespace(type="response.created"),
        SimpleNamespace(type=TEXT_DELTA_EVENT, delta="Hel"),
        SimpleNamespace(type="response.output_text.done", text="Hello"),
        SimpleNamespace(type=TEXT_DELTA_EVENT, delta="lo"),
        SimpleNamespace(type="response.completed"),
    ]
    upstream = FakeEventStream(events)
    responses = FakeResponses(upstream)
    llm = OpenAIPlannerLLM(settings, client=fake_client(responses))

    stream = await llm.open_stream("explain")
    deltas = [d async for d in stream]
    await stream.aclose()
    await stream.aclose()

    assert deltas == ["Hel", "lo"]
    assert responses.calls[0]["stream"] is True
    assert upstream.close_calls == 1


@pytest.mark.asyncio
async def test_stream_failure_is_mapped():
    upstream = FakeEventStream(
        [SimpleNamespace(type=TEXT_DELTA_EVENT, delta="Hi")], error=rate_limit_error()
    )
    stream = OpenAITextStream(upstream)
    received = []

    with pytest.raises(UpstreamTransportError):
        async for delta in stream:
            received.append(delta)

    assert received == ["Hi"]
