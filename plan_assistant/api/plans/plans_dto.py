from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, StringConstraints, field_validator

ExperienceLevel = Literal["beginner", "intermediate", "advanced"]
TimeAvailability = Literal["3-5", "5-10", "10+"]
TaskStatus = Literal["not_started", "in_progress", "completed"]


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class GeneratePlanRequest(BaseModel):
    projectGoal: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)] = Field(
        ..., description="What the user wants to build, in their own words."
    )
    experienceLevel: ExperienceLevel = Field(..., description="Self-reported experience.")
    timeAvailability: TimeAvailability = Field(..., description="Hours per week.")
    deadline: Optional[str] = Field(None, description="ISO-8601 date or datetime.")
    regenerate: Optional[bool] = Field(None, description="Set when asking for a new plan.")

    @field_validator("deadline", mode="before")
    @classmethod
    def _blank_deadline_is_none(cls, value: Any) -> Any:
        # The planner form sends "" when no date was picked.
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("deadline")
    @classmethod
    def _deadline_is_iso(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            _parse_iso(value)
        except (ValueError, OverflowError):
            raise ValueError("deadline must be an ISO-8601 date string")
        return value

    def deadline_iso(self) -> Optional[str]:
        """Deadline as a UTC timestamp with millisecond precision, e.g. 2026-01-31T00:00:00.000Z."""
        if self.deadline is None:
            return None
        return _parse_iso(self.deadline).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class Task(BaseModel):
    id: int = Field(..., description="Unique within the plan.")
    title: str = Field(..., description="What to do.")
    status: TaskStatus = Field(..., description="Progress of the task.")
    serial: int = Field(..., description="1-based position within its phase.")


class Phase(BaseModel):
    name: str = Field(..., description="Phase title.")
    serial: int = Field(..., description="1-based position within the plan.")
    tasks: List[Task] = Field(..., description="Ordered tasks of this phase.")

    def progress(self) -> Dict[str, int]:
        return _progress(self.tasks)


class ProjectPlan(BaseModel):
    goal: str = Field(..., description="The (possibly rewritten) project goal.")
    phases: List[Phase] = Field(..., description="Ordered phases of the plan.")

    def progress(self) -> Dict[str, int]:
        return _progress([task for phase in self.phases for task in phase.tasks])


def _progress(tasks: List[Task]) -> Dict[str, int]:
    total = len(tasks)
    completed = sum(1 for t in tasks if t.status == "completed")
    # Round half up, matching how the viewer shows percentages.
    percent = int(completed * 100 / total + 0.5) if total else 0
    return {"total": total, "completed": completed, "percent": percent}


class ExplainRequest(BaseModel):
    query: GeneratePlanRequest
    plan: ProjectPlan


class ErrorResponse(BaseModel):
    success: bool = Field(False, description="Always false for errors.")
    message: str = Field(..., description="Human readable reason.")
    errors: Optional[List[Dict[str, Any]]] = Field(
        None, description="Validation issues, when there are any."
    )
