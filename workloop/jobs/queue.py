"""
Job queue with two interchangeable backends.

* ``DramatiqQueue`` (durable): jobs become Dramatiq messages on a Redis
  broker; worker processes (``dramatiq workloop.worker``) pull them and run
  the registered handler. Retries and backoff belong to the broker.
* ``InProcessQueue`` (fallback, no broker configured): ``add`` only
  acknowledges the job. Nothing runs until ``execute_now`` is called for the
  queue name; handler failures are logged there and never reach the caller.

The backend is picked once at startup from a ``QueueConfig``; handlers live
in an explicit ``HandlerRegistry`` owned by the queue.

Usage
-----
>>> queue = create_queue("reports", QueueConfig())
>>> queue.register("reports", handle_report)
>>> job = await queue.add("generate-weekly-report", {"project_id": "p1"})
>>> queue.dispatch("reports", job.data)   # fallback mode only
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from pydantic import BaseModel, Field

from workloop.config import Settings
from workloop.errors import DuplicateReportError, NotFoundError
from workloop.logger import get_logger

logger = get_logger(__name__)


class Job(BaseModel):
    """A transient unit of work; never persisted by this process."""

    id: str
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Handler = Callable[[Job], Awaitable[Any]]
LoopFinalizer = Callable[[], Awaitable[None]]

# Failures the broker should not retry: re-running cannot change the outcome.
NON_RETRYABLE = (DuplicateReportError, NotFoundError)


@dataclass(frozen=True)
class QueueConfig:
    """Backend selection, resolved once at startup."""

    redis_url: str = ""
    max_retries: int = 3
    min_backoff_ms: int = 15_000
    max_backoff_ms: int = 7 * 24 * 3600 * 1000

    @property
    def durable(self) -> bool:
        return bool(self.redis_url)

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueueConfig":
        return cls(
            redis_url=settings.redis_url,
            max_retries=settings.queue_max_retries,
            min_backoff_ms=settings.queue_min_backoff_ms,
            max_backoff_ms=settings.queue_max_backoff_ms,
        )


class HandlerRegistry:
    """Queue name → handler. Re-registering a name replaces the handler."""

    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}

    def register(self, queue_name: str, handler: Handler) -> None:
        if queue_name in self._handlers:
            logger.debug("Replacing handler for queue '%s'", queue_name)
        self._handlers[queue_name] = handler

    def get(self, queue_name: str) -> Optional[Handler]:
        return self._handlers.get(queue_name)

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, queue_name: object) -> bool:
        return queue_name in self._handlers


def _json_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce payload values (datetimes, enums...) into JSON-safe types."""
    return Job(id="", name="", data=data).model_dump(mode="json")["data"]


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class JobQueue(ABC):
    """Common interface of both backends."""

    mode: str = ""

    def __init__(self, name: str, registry: Optional[HandlerRegistry] = None) -> None:
        self.name = name
        self.registry = registry or HandlerRegistry()
        self._loop_finalizers: List[LoopFinalizer] = []

    def register(self, queue_name: str, handler: Handler) -> None:
        """Bind *handler* to *queue_name* (last writer wins)."""
        self.registry.register(queue_name, handler)
        logger.info("[%s] Registered handler for '%s'", self.mode, queue_name)

    def add_loop_finalizer(self, finalizer: LoopFinalizer) -> None:
        """
        Await *finalizer* at the end of every job that runs under its own
        event loop, before that loop closes (durable workers only).
        """
        self._loop_finalizers.append(finalizer)

    @abstractmethod
    async def add(self, job_name: str, data: Dict[str, Any]) -> Job:
        """Enqueue a job on this queue and return its acknowledgement."""

    async def execute_now(self, queue_name: str, data: Dict[str, Any]) -> None:
        """Run a job synchronously. Only meaningful in fallback mode."""
        return None

    async def execute_mock_job(self, queue_name: str, data: Dict[str, Any]) -> None:
        await self.execute_now(queue_name, data)

    def dispatch(self, queue_name: str, data: Dict[str, Any]) -> Optional["asyncio.Task[None]"]:
        """Fire-and-forget ``execute_now``. Returns ``None`` when there is nothing to run locally."""
        return None

    async def drain(self) -> None:
        """Wait for locally dispatched jobs to finish."""
        return None

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Fallback backend
# ---------------------------------------------------------------------------

class InProcessQueue(JobQueue):
    """
    Broker-less queue.

    Per job: created → enqueued (inert) → ``execute_now`` → running →
    completed | failed. Failed jobs are logged and never retried.
    """

    mode = "in-process"

    def __init__(self, name: str, registry: Optional[HandlerRegistry] = None) -> None:
        super().__init__(name, registry)
        self._tasks: Set["asyncio.Task[None]"] = set()
        logger.warning("[%s] Queue '%s' initialized without a broker (jobs run in-process)", self.mode, name)

    async def add(self, job_name: str, data: Dict[str, Any]) -> Job:
        job = Job(id=f"mock-{uuid.uuid4().hex[:12]}", name=job_name, data=dict(data))
        logger.info("[%s] Job '%s' (%s) added to '%s'", self.mode, job_name, job.id, self.name)
        return job

    async def execute_now(self, queue_name: str, data: Dict[str, Any]) -> None:
        handler = self.registry.get(queue_name)
        if handler is None:
            logger.warning("[%s] No handler found for '%s'", self.mode, queue_name)
            return

        job = Job(id=f"mock-{uuid.uuid4().hex[:12]}", name=queue_name, data=dict(data))
        logger.info("[%s] Executing job %s for '%s'", self.mode, job.id, queue_name)
        try:
            await handler(job)
        except DuplicateReportError as exc:
            logger.warning("[%s] Job %s skipped, report already generated: %s", self.mode, job.id, exc)
        except Exception:
            logger.exception("[%s] Job %s for '%s' failed", self.mode, job.id, queue_name)
        else:
            logger.info("[%s] Job %s completed", self.mode, job.id)

    def dispatch(self, queue_name: str, data: Dict[str, Any]) -> Optional["asyncio.Task[None]"]:
        task = asyncio.get_running_loop().create_task(self.execute_now(queue_name, data))
        # The loop only keeps weak references to tasks.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()


# ---------------------------------------------------------------------------
# Durable backend
# ---------------------------------------------------------------------------

class DramatiqQueue(JobQueue):
    """
    Broker-backed queue; each queue name maps to one Dramatiq actor.

    Producers enqueue raw messages, so an API process can add jobs without
    registering handlers. Worker processes register the handlers, which
    declares the actors on the broker.
    """

    mode = "dramatiq"

    def __init__(
        self,
        name: str,
        broker: dramatiq.Broker,
        registry: Optional[HandlerRegistry] = None,
        max_retries: int = 3,
        min_backoff_ms: int = 15_000,
        max_backoff_ms: int = 7 * 24 * 3600 * 1000,
    ) -> None:
        super().__init__(name, registry)
        self.broker = broker
        self.max_retries = max_retries
        self.min_backoff_ms = min_backoff_ms
        self.max_backoff_ms = max_backoff_ms
        self._actors: Dict[str, dramatiq.Actor] = {}
        broker.declare_queue(name)

    def register(self, queue_name: str, handler: Handler) -> None:
        super().register(queue_name, handler)
        if queue_name not in self._actors:
            self._actors[queue_name] = self._declare_actor(queue_name)

    def actor(self, queue_name: str) -> Optional[dramatiq.Actor]:
        return self._actors.get(queue_name)

    def _declare_actor(self, queue_name: str) -> dramatiq.Actor:
        registry = self.registry

        def run_job(job_id: str, job_name: str, data: Dict[str, Any]) -> None:
            # Looked up per message so re-registration takes effect.
            handler = registry.get(queue_name)
            if handler is None:
                raise LookupError(f"No handler registered for queue '{queue_name}'")
            job = Job(id=job_id, name=job_name, data=data)
            logger.info("[%s] Executing job %s (%s)", self.mode, job_id, job_name)
            asyncio.run(self._run_in_loop(handler, job))
            logger.info("[%s] Job %s completed", self.mode, job_id)

        run_job.__name__ = f"run_{queue_name.replace('-', '_')}"
        return dramatiq.actor(
            run_job,
            broker=self.broker,
            actor_name=queue_name,
            queue_name=queue_name,
            max_retries=self.max_retries,
            min_backoff=self.min_backoff_ms,
            max_backoff=self.max_backoff_ms,
            throws=NON_RETRYABLE,
        )

    async def _run_in_loop(self, handler: Handler, job: Job) -> None:
        try:
            await handler(job)
        finally:
            for finalize in self._loop_finalizers:
                await finalize()

    async def add(self, job_name: str, data: Dict[str, Any]) -> Job:
        job = Job(id=str(uuid.uuid4()), name=job_name, data=_json_data(data))
        message = dramatiq.Message(
            queue_name=self.name,
            actor_name=self.name,
            args=(),
            kwargs={"job_id": job.id, "job_name": job.name, "data": job.data},
            options={},
            message_id=job.id,
        )
        await asyncio.to_thread(self.broker.enqueue, message)
        logger.info("[%s] Job '%s' (%s) added to '%s'", self.mode, job_name, job.id, self.name)
        return job

    async def close(self) -> None:
        self.broker.close()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_queue(
    name: str,
    config: QueueConfig,
    registry: Optional[HandlerRegistry] = None,
    broker: Optional[dramatiq.Broker] = None,
) -> JobQueue:
    """
    Build the queue backend selected by *config*.

    In durable mode the Redis broker also becomes Dramatiq's global broker,
    which is what the ``dramatiq`` worker CLI consumes.
    """
    if not config.durable:
        return InProcessQueue(name, registry)

    if broker is None:
        broker = RedisBroker(url=config.redis_url)
        dramatiq.set_broker(broker)
    return DramatiqQueue(
        name,
        broker,
        registry,
        max_retries=config.max_retries,
        min_backoff_ms=config.min_backoff_ms,
        max_backoff_ms=config.max_backoff_ms,
    )
