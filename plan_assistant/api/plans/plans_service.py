import logging
from typing import Any, Optional

from pydantic import ValidationError

from plan_assistant.api.plans.plans_dto import ExplainRequest, GeneratePlanRequest, ProjectPlan
from plan_assistant.config import Settings
from plan_assistant.generate.explainer import open_explanation
from plan_assistant.generate.planner import plan_project
from plan_assistant.run_utils.llm import PlannerLLM, TextStream
from plan_assistant.run_utils.metrics import elapsed_ms, now_ms
from plan_assistant.run_utils.rate_limit import RateLimiter
from plan_assistant.utils.errors import (
    InputValidationError,
    PlanAssistantError,
    PlanServiceError,
    ThrottleError,
)

logger = logging.getLogger(__name__)


def _validation_errors(e: ValidationError):
    return e.errors(include_url=False, include_context=False, include_input=False)


def _parse(model, payload: Any):
    """Validate a raw JSON body or an already decoded object."""
    if isinstance(payload, (bytes, str)):
        return model.model_validate_json(payload)
    return model.model_validate(payload)


class PlanService:
    """Generation and explanation of plans.

    Each operation has its own limiter; both share the model client.
    Validation and throttling are decided before the model is called.
    """

    def __init__(
        self,
        settings: Settings,
        llm: PlannerLLM,
        generate_limiter: Optional[RateLimiter] = None,
        explain_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings
        self.llm = llm
        self.generate_limiter = generate_limiter or RateLimiter(
            settings.generate_rate_limit.max_requests,
            settings.generate_rate_limit.window_ms,
            cleanup_interval_ms=settings.cleanup_interval_ms,
            name="generate",
        )
        self.explain_limiter = explain_limiter or RateLimiter(
            settings.explain_rate_limit.max_requests,
            settings.explain_rate_limit.window_ms,
            cleanup_interval_ms=settings.cleanup_interval_ms,
            name="explain",
        )

    def _check_rate_limit(self, limiter: RateLimiter, client_id: str, log_prefix: str) -> None:
        result = limiter.check(client_id)
        if not result.allowed:
            logger.warning(f"{log_prefix} Rate limit exceeded for client: {client_id}")
            raise ThrottleError(
                reset_in=result.reset_in_seconds,
                reset_at_ms=result.reset_at,
                limit=limiter.max_requests,
            )
        logger.debug(
            f"{log_prefix} Rate limit check passed: remaining={result.remaining} "
            f"resetIn={result.reset_in_seconds}"
        )

    async def generate_plan(
        self, payload: Any, client_id: str, request_id: str
    ) -> ProjectPlan:
        log_prefix = f"[plans.generate:{request_id}]"
        start = now_ms()
        try:
            self._check_rate_limit(self.generate_limiter, client_id, log_prefix)

            try:
                request = _parse(GeneratePlanRequest, payload)
            except ValidationError as e:
                logger.warning(f"{log_prefix} Input validation failed: {e.error_count()} issues")
                raise InputValidationError(
                    "Invalid input data. Please check your form fields.",
                    errors=_validation_errors(e),
                ) from e
            logger.debug(
                f"{log_prefix} Validation successful: experienceLevel={request.experienceLevel} "
                f"timeAvailability={request.timeAvailability} deadline={request.deadline}"
            )

            plan = await plan_project(self.llm, request, self.settings, log_prefix)
            logger.info(
                f"{log_prefix} Successfully generated plan totalDurationMs={elapsed_ms(start)}"
            )
            return plan
        except PlanAssistantError as e:
            e.request_id = request_id
            raise
        except Exception as e:
            logger.exception(f"{log_prefix} Unexpected error")
            raise PlanServiceError(
                f"Failed to generate plan: {e}", request_id=request_id
            ) from e

    async def explain_plan(
        self,
        payload: Any,
        client_id: str,
        request_id: str,
    ) -> TextStream:
        """Validate and open the upstream stream; the caller owns closing it.

        Everything that can fail before the first chunk fails here, so the
        caller can still answer with a JSON error instead of a broken stream.
        """
        log_prefix = f"[plans.explain:{request_id}]"
        try:
            self._check_rate_limit(self.explain_limiter, client_id, log_prefix)

            try:
                request = _parse(ExplainRequest, payload)
            except ValidationError as e:
                logger.warning(f"{log_prefix} Validation failed: {e.error_count()} issues")
                raise InputValidationError(
                    "Invalid request data", errors=_validation_errors(e)
                ) from e
            logger.debug(
                f"{log_prefix} Validation successful: phases={len(request.plan.phases)} "
                f"experienceLevel={request.query.experienceLevel}"
            )

            stream = await open_explanation(self.llm, request, log_prefix)
        except PlanAssistantError as e:
            e.request_id = request_id
            raise
        except Exception as e:
            logger.exception(f"{log_prefix} Unexpected error")
            raise PlanServiceError("Failed to explain plan", request_id=request_id) from e

        return stream

    def rate_limit_stats(self):
        return {
            "generate": self.generate_limiter.stats(),
            "explain": self.explain_limiter.stats(),
        }
