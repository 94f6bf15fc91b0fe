import logging

from plan_assistant.api.plans.plans_dto import ExplainRequest
from plan_assistant.generate.prompts import make_explain_prompt
from plan_assistant.run_utils.llm import PlannerLLM, TextStream

logger = logging.getLogger(__name__)


async def open_explanation(
    llm: PlannerLLM, request: ExplainRequest, log_prefix: str = ""
) -> TextStream:
    """Start the streamed explanation; the caller owns closing the stream."""
    prompt = make_explain_prompt(request.query, request.plan)
    stream = await llm.open_stream(prompt, log_prefix=log_prefix)
    logger.debug(f"{log_prefix} OpenAI stream initiated")
    return stream
