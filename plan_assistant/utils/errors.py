from typing import Any, Dict, List, Optional


class PlanAssistantError(Exception):
    """Base for every failure a plan request can end in.

    `message` is safe to show to the end user; anything diagnostic (raw model
    text, provider messages) lives on subclass attributes and only reaches
    the logs.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = errors
        self.request_id = request_id

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message}
        if self.errors is not None:
            body["errors"] = self.errors
        return body

    def headers(self) -> Dict[str, str]:
        return {}


class ThrottleError(PlanAssistantError):
    """Client exceeded its rate limit; recoverable by waiting `reset_in` seconds."""

    status_code = 429

    def __init__(
        self,
        reset_in: int,
        reset_at_ms: int,
        limit: int,
        request_id: Optional[str] = None,
    ):
        super().__init__(
            f"Too many requests. Please try again in {reset_in} seconds.",
            request_id=request_id,
        )
        self.reset_in = reset_in
        self.reset_at_ms = reset_at_ms
        self.limit = limit

    def headers(self) -> Dict[str, str]:
        return {
            "Retry-After": str(self.reset_in),
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(self.reset_at_ms // 1000),
        }


class InputValidationError(PlanAssistantError):
    status_code = 400


class UpstreamContractError(PlanAssistantError):
    """The model answered, but not with a usable plan."""

    status_code = 500


class PlanParseError(UpstreamContractError):
    def __init__(self, raw_text: str, reason: str, request_id: Optional[str] = None):
        super().__init__(
            "AI generated an invalid response. Please try again.",
            errors=[{"message": "Response is not valid JSON"}],
            request_id=request_id,
        )
        self.raw_text = raw_text
        self.reason = reason


class UpstreamTransportError(PlanAssistantError):
    """Provider-side failure: network, timeout, or a non-2xx answer."""

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message, request_id=request_id)
        self.upstream_status = upstream_status
        self.status_code = 429 if upstream_status == 429 else 500


class PlanServiceError(PlanAssistantError):
    status_code = 500


class ConfigError(Exception):
    pass
