import logging
import time
import uuid
from typing import Any

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)


def elapsed_ms(start_ms: int) -> int:
    return now_ms() - start_ms


def add_tokens(log_prefix: str, where: str, usage: Any) -> None:
    """Log token usage reported by the provider, if any."""
    if usage is None:
        return
    prompt_tokens = int(getattr(usage, "input_tokens", 0) or 0)
    completion_tokens = int(getattr(usage, "output_tokens", 0) or 0)
    logger.debug(
        f"{log_prefix} {where} token usage: prompt={prompt_tokens} completion={completion_tokens}"
    )
