"""Recover a JSON document from model output.

Models are told to answer with bare JSON but sometimes wrap it in a markdown
code fence anyway. Each strategy below gets the raw text and either returns a
parsed value or reports why it could not; `recover_json` tries them in order
and stops at the first success.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from plan_assistant.utils.errors import PlanParseError

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


@dataclass
class Recovered:
    ok: bool
    value: Any = None
    error: Optional[str] = None


def parse_direct(raw: str) -> Recovered:
    try:
        return Recovered(ok=True, value=json.loads(raw))
    except json.JSONDecodeError as e:
        return Recovered(ok=False, error=str(e))


def strip_code_fence(raw: str) -> Recovered:
    cleaned = _FENCE_OPEN.sub("", raw.strip())
    cleaned = _FENCE_CLOSE.sub("", cleaned).strip()
    return parse_direct(cleaned)


Strategy = Callable[[str], Recovered]

DEFAULT_STRATEGIES: List[Strategy] = [parse_direct, strip_code_fence]


def recover_json(
    raw: str,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
    request_id: Optional[str] = None,
) -> Any:
    """Return the first successfully parsed value.

    Raises PlanParseError carrying the raw text when every strategy fails;
    the reason reported is the one from the first (direct) attempt.
    """
    failures: List[str] = []
    for strategy in strategies:
        result = strategy(raw)
        if result.ok:
            return result.value
        failures.append(result.error or strategy.__name__)
    raise PlanParseError(
        raw_text=raw,
        reason=failures[0] if failures else "no recovery strategy configured",
        request_id=request_id,
    )
