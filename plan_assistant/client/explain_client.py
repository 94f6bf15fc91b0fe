"""Client for the plan endpoints, behaving like the plan viewer does.

Only one explanation is in flight per client: starting a new one cancels the
previous request, and a cooldown gates how often explanations may start,
independently of the server's rate limit.
"""

import asyncio
import json
import logging
import math
import time
from typing import Any, Callable, Dict, Optional, Union

import httpx
from pydantic import BaseModel, ValidationError

from plan_assistant.api.plans.plans_dto import GeneratePlanRequest, ProjectPlan
from plan_assistant.config import EXPLAIN_COOLDOWN_MS
from plan_assistant.run_utils.sanitize import strip_markdown

logger = logging.getLogger(__name__)


class FetchJsonError(Exception):
    def __init__(
        self,
        message: str,
        cause: Any = None,
        status_code: Optional[int] = None,
        api_error: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.status_code = status_code
        self.api_error = api_error


class ExplainCooldownError(Exception):
    def __init__(self, remaining_seconds: int):
        super().__init__(f"Explanation available again in {remaining_seconds}s")
        self.remaining_seconds = remaining_seconds


def api_error_message(data: Any) -> str:
    """Pick the most useful message out of an error body."""
    if not isinstance(data, dict):
        return "Request failed"
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if error:
        return error if isinstance(error, str) else json.dumps(error)
    if data.get("message"):
        return str(data["message"])
    errors = data.get("errors")
    if errors:
        first = errors[0] if isinstance(errors, list) else None
        if isinstance(first, dict) and (first.get("message") or first.get("msg")):
            return str(first.get("message") or first.get("msg"))
        return json.dumps(errors)
    return "Request failed"


def _as_json(value: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(exclude_none=True)
    return value


class ExplainClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        http: Optional[httpx.AsyncClient] = None,
        cooldown_ms: int = EXPLAIN_COOLDOWN_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http or httpx.AsyncClient(base_url=base_url, timeout=60.0)
        self.cooldown_ms = cooldown_ms
        self._clock = clock
        self._last_explain_at: Optional[float] = None
        self._inflight: Optional[asyncio.Task] = None

    async def generate_plan(
        self, payload: Union[GeneratePlanRequest, Dict[str, Any]]
    ) -> ProjectPlan:
        resp = await self.http.post("/plans/generate", json=_as_json(payload))
        text = resp.text
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"[client] invalid JSON response: {e}")
            raise FetchJsonError(
                "Invalid JSON response"
                if resp.is_success
                else f"Request failed with status {resp.status_code}",
                cause=text,
                status_code=resp.status_code,
                api_error=None if resp.is_success else text,
            ) from e

        if not resp.is_success:
            message = api_error_message(data)
            raise FetchJsonError(message, cause=data, status_code=resp.status_code, api_error=message)

        try:
            return ProjectPlan.model_validate(data)
        except ValidationError as e:
            issues = ", ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            message = f"Schema validation failed: {issues}"
            raise FetchJsonError(
                message, cause=data, status_code=resp.status_code, api_error=message
            ) from e

    def cooldown_seconds(self) -> int:
        if self._last_explain_at is None:
            return 0
        remaining_ms = self.cooldown_ms - (self._clock() - self._last_explain_at) * 1000
        return max(0, math.ceil(remaining_ms / 1000))

    @property
    def can_explain(self) -> bool:
        return self.cooldown_seconds() == 0

    def abort(self) -> None:
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None

    async def explain_plan(
        self,
        plan: Union[ProjectPlan, Dict[str, Any]],
        query: Union[GeneratePlanRequest, Dict[str, Any]],
        on_chunk: Optional[Callable[[str], None]] = None,
    ) -> Optional[str]:
        """Stream an explanation and return it with markdown stripped.

        Returns None when a newer explanation superseded this one.
        """
        if not self.can_explain:
            raise ExplainCooldownError(self.cooldown_seconds())
        self._last_explain_at = self._clock()

        self.abort()
        task = asyncio.ensure_future(self._stream_explanation(plan, query, on_chunk))
        self._inflight = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and not (current and current.cancelling()):
                return None
            raise
        finally:
            if self._inflight is task:
                self._inflight = None

    async def _stream_explanation(self, plan, query, on_chunk) -> str:
        body = {"plan": _as_json(plan), "query": _as_json(query)}
        accumulated = ""
        async with self.http.stream("POST", "/plans/explain", json=body) as resp:
            if not resp.is_success:
                await resp.aread()
                try:
                    message = api_error_message(resp.json())
                except json.JSONDecodeError:
                    message = "Failed to explain plan"
                raise FetchJsonError(message, status_code=resp.status_code, api_error=message)
            async for chunk in resp.aiter_text():
                if not chunk:
                    continue
                accumulated += chunk
                if on_chunk is not None:
                    on_chunk(chunk)
        return strip_markdown(accumulated)

    async def aclose(self) -> None:
        self.abort()
        await self.http.aclose()
