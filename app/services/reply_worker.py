import asyncio
from typing import Awaitable, Callable, Optional

from app.logging_config import get_logger

logger = get_logger("reply_worker")


class ReplyDispatcher:
    """Bounded fire-and-forget runner for delayed AI replies.

    Every job sleeps its own delay as a separate task, so one slow
    conversation never holds up another. Completion work is limited to
    ``max_concurrency`` at a time and at most ``max_pending`` jobs may be
    outstanding; anything beyond that is dropped.
    """

    def __init__(self, handler: Callable[..., Awaitable], max_concurrency: int = 4, max_pending: int = 200):
        self._handler = handler
        self.max_concurrency = max(1, max_concurrency)
        self.max_pending = max(1, max_pending)
        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, job) -> bool:
        """Queue a job on the running loop. Returns False when it was dropped."""
        if len(self._tasks) >= self.max_pending:
            logger.warning(
                "Reply backlog full, dropping job",
                extra={"context": {"conversation_id": str(job.conversation_id), "pending": len(self._tasks)}},
            )
            return False

        task = asyncio.get_running_loop().create_task(self._run(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run(self, job) -> None:
        try:
            await asyncio.sleep(job.delay_seconds)
            async with self._semaphore:
                result = await self._handler(job)
            if result is not None and not result.ok:
                logger.info(
                    "Reply skipped",
                    extra={
                        "context": {
                            "conversation_id": str(job.conversation_id),
                            "code": result.error_code,
                            "error": result.error,
                        }
                    },
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Reply job crashed",
                extra={"context": {"conversation_id": str(job.conversation_id), "error": str(e)}},
                exc_info=True,
            )

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} pending reply jobs")


_dispatcher: Optional[ReplyDispatcher] = None


def get_reply_dispatcher() -> ReplyDispatcher:
    global _dispatcher
    if _dispatcher is None:
        from app.config import settings
        from app.services.reply_service import run_reply

        _dispatcher = ReplyDispatcher(
            run_reply,
            max_concurrency=settings.reply_max_concurrency,
            max_pending=settings.reply_max_pending,
        )
    return _dispatcher


async def shutdown_reply_dispatcher() -> None:
    global _dispatcher
    if _dispatcher is None:
        return
    await _dispatcher.shutdown()
    _dispatcher = None
