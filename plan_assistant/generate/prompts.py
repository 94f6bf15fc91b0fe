import json

from plan_assistant.api.plans.plans_dto import GeneratePlanRequest, ProjectPlan
from plan_assistant.config import MAX_PHASES, MAX_TASKS_PER_PHASE
from plan_assistant.run_utils.sanitize import sanitize_string

NO_DEADLINE = "No deadline"

PLAN_OUTPUT_FORMAT = """{
  "goal": string,
  "phases": [
    {
      "name": string,
      "serial": number,
      "tasks": [
        {
          "id": number,
          "title": string,
          "status": "not_started",
          "serial": number
        }
      ]
    }
  ]
}"""


def make_generate_prompt(
    payload: GeneratePlanRequest,
    max_phases: int = MAX_PHASES,
    max_tasks_per_phase: int = MAX_TASKS_PER_PHASE,
) -> str:
    goal = sanitize_string(payload.projectGoal)
    deadline = payload.deadline_iso() or NO_DEADLINE
    return (
        "You are an AI project planner.\n\n"
        "Input:\n"
        f'- Raw user goal: "{goal}"\n'
        f'- Experience level: "{payload.experienceLevel}"\n'
        f'- Time availability: "{payload.timeAvailability}"\n'
        f'- Deadline: "{deadline}"\n\n'
        "Step 1 - Goal normalization:\n"
        "- If the raw user goal is unclear, vague, or gibberish, infer a reasonable "
        "and realistic software-related project goal.\n"
        "- Rewrite the goal into ONE clear, concise sentence.\n"
        "- Use this rewritten goal in the final output.\n\n"
        "Step 2 - Plan generation:\n"
        "Generate a project plan that breaks the goal into phases and actionable tasks.\n"
        "Output format (STRICT):\n"
        f"{PLAN_OUTPUT_FORMAT}\n\n"
        "Constraints:\n"
        f"- Maximum {max_phases} phases\n"
        f"- Maximum {max_tasks_per_phase} tasks per phase\n"
        '- All tasks MUST have status "not_started"\n'
        "- serial values must start at 1 and increment sequentially\n"
        "- id values must be unique integers\n"
        "- Return ONLY valid JSON\n"
        "- Do NOT include explanations, markdown, comments, or extra text\n"
    )


def make_explain_prompt(query: GeneratePlanRequest, plan: ProjectPlan) -> str:
    query_json = json.dumps(query.model_dump(exclude_none=True), indent=2, ensure_ascii=False)
    plan_json = json.dumps(plan.model_dump(), indent=2, ensure_ascii=False)
    return (
        "You are an AI project mentor.\n\n"
        f"User original query:\n{query_json}\n\n"
        "Here is the generated project plan in JSON format:\n"
        f"{plan_json}\n\n"
        "Your task:\n\n"
        "1. Summarize the overall project plan in a concise and actionable way.\n"
        "2. Explain the reasoning behind the order of the phases.\n"
        "3. Provide guidance on how the user should approach execution.\n"
        f"4. Give tips tailored to the user's experience level ({query.experienceLevel}).\n"
        "5. Keep it simple, clear, and under 150 words.\n"
        "6. Return plain text only - do NOT include JSON, markdown, or extra formatting. (Important)\n"
    )
