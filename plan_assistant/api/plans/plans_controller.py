from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from plan_assistant.api.plans.plans_dto import ErrorResponse, ProjectPlan
from plan_assistant.api.plans.plans_service import PlanService
from plan_assistant.config import get_settings
from plan_assistant.generate.seed import example_plan
from plan_assistant.run_utils.llm import OpenAIPlannerLLM, TextStream
from plan_assistant.run_utils.metrics import new_request_id
from plan_assistant.run_utils.rate_limit import get_client_identifier
from plan_assistant.run_utils.stream_relay import relay_text_stream

router = APIRouter(
    tags=["Plans"],
    prefix="/plans",
)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Content-Type-Options": "nosniff",
}


@lru_cache
def get_plan_service() -> PlanService:
    settings = get_settings()
    return PlanService(settings, OpenAIPlannerLLM(settings))


def get_request_id(response: Response) -> str:
    request_id = new_request_id()
    response.headers["X-Request-ID"] = request_id
    return request_id


@router.post(
    "/generate",
    response_model=ProjectPlan,
    responses=ERROR_RESPONSES,
    summary="Generate a project plan from a goal",
)
async def generate_plan(
    request: Request,
    request_id: str = Depends(get_request_id),
    plan_service: PlanService = Depends(get_plan_service),
) -> ProjectPlan:
    # The body is parsed by the service, after the rate limit check.
    body = await request.body()
    return await plan_service.generate_plan(
        body, get_client_identifier(request.headers), request_id
    )


class ExplainStreamResponse(StreamingResponse):
    """Relays an upstream text stream and releases it however the send ends.

    If sending the response start fails, the relay generator never runs,
    so its own cleanup never happens; the upstream is closed here instead.
    """

    def __init__(self, source: TextStream, log_prefix: str = "", is_disconnected=None, **kwargs):
        self.source = source
        super().__init__(
            relay_text_stream(source, is_disconnected=is_disconnected, log_prefix=log_prefix),
            **kwargs,
        )

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.body_iterator.aclose()
            await self.source.aclose()


@router.post(
    "/explain",
    responses={200: {"content": {"text/plain": {}}}, **ERROR_RESPONSES},
    summary="Stream a plain-text explanation of a plan",
)
async def explain_plan(
    request: Request,
    request_id: str = Depends(get_request_id),
    plan_service: PlanService = Depends(get_plan_service),
):
    body = await request.body()
    stream = await plan_service.explain_plan(
        body, get_client_identifier(request.headers), request_id
    )
    return ExplainStreamResponse(
        stream,
        log_prefix=f"[plans.explain:{request_id}]",
        is_disconnected=request.is_disconnected,
        media_type="text/plain; charset=utf-8",
        headers={**STREAM_HEADERS, "X-Request-ID": request_id},
    )


@router.get(
    "/example",
    response_model=ProjectPlan,
    summary="Example plan used to seed the viewer",
)
async def get_example_plan() -> ProjectPlan:
    return example_plan()


@router.get(
    "/rate-limit/stats",
    summary="Rate limiter state, outside production only",
)
async def rate_limit_stats(plan_service: PlanService = Depends(get_plan_service)):
    if plan_service.settings.is_production:
        raise HTTPException(status_code=404, detail="Not Found")
    return plan_service.rate_limit_stats()
