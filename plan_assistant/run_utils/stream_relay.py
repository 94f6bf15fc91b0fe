import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from plan_assistant.run_utils.llm import TextStream
from plan_assistant.run_utils.metrics import elapsed_ms, now_ms

logger = logging.getLogger(__name__)

QUEUE_SIZE = 64
LOG_EVERY_CHUNKS = 10

_DONE = object()


class _StreamFailed:
    def __init__(self, error: BaseException):
        self.error = error


async def relay_text_stream(
    source: TextStream,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    log_prefix: str = "",
    queue_size: int = QUEUE_SIZE,
) -> AsyncIterator[bytes]:
    """Forward text deltas from `source` as UTF-8 chunks.

    A producer task drains the upstream into a bounded queue, so a slow
    client pauses the upstream read. The upstream is closed when the stream
    completes, fails, or the consumer goes away. An upstream failure is
    re-raised to the consumer, which aborts the outgoing response.
    """
    q: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
    start = now_ms()
    chunk_count = 0
    total_length = 0

    async def produce():
        try:
            async for delta in source:
                await q.put(delta.encode("utf-8"))
            await q.put(_DONE)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await q.put(_StreamFailed(e))

    producer = asyncio.create_task(produce())
    try:
        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.info(f"{log_prefix} Client disconnected, stopping relay")
                break
            item = await q.get()
            if item is _DONE:
                logger.info(
                    f"{log_prefix} Stream completed chunks={chunk_count} "
                    f"chars={total_length} durationMs={elapsed_ms(start)}"
                )
                break
            if isinstance(item, _StreamFailed):
                logger.error(f"{log_prefix} Stream error: {item.error!r}")
                raise item.error
            chunk_count += 1
            total_length += len(item)
            if chunk_count % LOG_EVERY_CHUNKS == 0:
                logger.debug(
                    f"{log_prefix} Streamed {chunk_count} chunks ({total_length} bytes)"
                )
            yield item
    finally:
        producer.cancel()
        try:
            await producer
        except asyncio.CancelledError:
            pass
        await source.aclose()
