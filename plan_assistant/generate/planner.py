import json
import logging
from typing import Any

from pydantic import ValidationError

from plan_assistant.api.plans.plans_dto import GeneratePlanRequest, Phase, ProjectPlan, Task
from plan_assistant.config import MAX_PHASES, MAX_TASKS_PER_PHASE, Settings
from plan_assistant.generate.prompts import make_generate_prompt
from plan_assistant.generate.seed import MOCK
from plan_assistant.run_utils.llm import PlannerLLM
from plan_assistant.run_utils.metrics import elapsed_ms, now_ms
from plan_assistant.run_utils.recovery import recover_json
from plan_assistant.utils.errors import PlanParseError, UpstreamContractError

logger = logging.getLogger(__name__)


def validate_plan(data: Any) -> ProjectPlan:
    try:
        return ProjectPlan.model_validate(data)
    except ValidationError as e:
        raise UpstreamContractError(
            "AI generated an invalid response. Please try again.",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


def normalize_plan(
    plan: ProjectPlan,
    max_phases: int = MAX_PHASES,
    max_tasks_per_phase: int = MAX_TASKS_PER_PHASE,
) -> ProjectPlan:
    """Return a copy that satisfies the plan invariants whatever the model sent.

    Caps phases and tasks, renumbers serials from 1 and resets every task to
    not_started. The input plan is left untouched.
    """
    return ProjectPlan(
        goal=plan.goal,
        phases=[
            Phase(
                name=phase.name,
                serial=phase_idx + 1,
                tasks=[
                    Task(id=task.id, title=task.title, status="not_started", serial=task_idx + 1)
                    for task_idx, task in enumerate(phase.tasks[:max_tasks_per_phase])
                ],
            )
            for phase_idx, phase in enumerate(plan.phases[:max_phases])
        ],
    )


async def plan_project(
    llm: PlannerLLM,
    payload: GeneratePlanRequest,
    settings: Settings,
    log_prefix: str = "",
) -> ProjectPlan:
    start = now_ms()
    if settings.devmode:
        logger.debug(f"{log_prefix} DEVMODE: returning example plan")
        content = MOCK
    else:
        prompt = make_generate_prompt(
            payload, settings.max_phases, settings.max_tasks_per_phase
        )
        content = await llm.complete(prompt, log_prefix=log_prefix)
        logger.debug(
            f"{log_prefix} OpenAI response received durationMs={elapsed_ms(start)} "
            f"contentLength={len(content)}"
        )

    if not content:
        logger.error(f"{log_prefix} AI returned empty response")
        raise UpstreamContractError("AI did not return any content. Please try again.")

    try:
        data = recover_json(content)
    except PlanParseError as e:
        logger.error(f"{log_prefix} Failed to parse AI response as JSON after fallback: {e.reason}")
        logger.error(f"{log_prefix} Raw AI response: {e.raw_text}")
        raise

    try:
        plan = validate_plan(data)
    except UpstreamContractError as e:
        logger.error(f"{log_prefix} AI response validation failed: {json.dumps(e.errors)}")
        raise

    plan = normalize_plan(plan, settings.max_phases, settings.max_tasks_per_phase)
    logger.debug(
        f"{log_prefix} Plan normalized: phases={len(plan.phases)} "
        f"tasksPerPhase={[len(p.tasks) for p in plan.phases]}"
    )
    return plan
