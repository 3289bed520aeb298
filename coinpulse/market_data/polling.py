"""
Polling streams over the data client.

A poll session fetches once immediately and then once per interval until it is
stopped. Each session is scoped to a subject (one coin for the chart, an id set
for the table). Once stopped, a session never delivers again, even for fetches
that were already in flight.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from coinpulse.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DataCallback = Callable[[Any], None]


@dataclass(frozen=True)
class PollSubject:
    """What a poll session is scoped to."""

    kind: str
    ids: tuple[str, ...]

    @classmethod
    def chart(cls, entity_id: str) -> "PollSubject":
        return cls(kind="chart", ids=(entity_id,))

    @classmethod
    def table(cls, ids: list[str] | tuple[str, ...]) -> "PollSubject":
        return cls(kind="table", ids=tuple(ids))

    def __str__(self) -> str:
        return f"{self.kind}:{','.join(self.ids)}"


class DataSubscription:
    """Handle returned by ``PollSession.on_data``; calling it detaches the callback."""

    def __init__(self, session: "PollSession[Any]", callback: DataCallback) -> None:
        self._session = session
        self._callback: DataCallback | None = callback

    @property
    def active(self) -> bool:
        return self._callback is not None

    def __call__(self) -> None:
        if self._callback is None:
            return
        callback, self._callback = self._callback, None
        self._session._detach(callback)


class PollSession(Generic[T]):
    """
    One timer plus its in-flight fetches for one subject.

    Created by ``PollingStreamFactory.start``; torn down by ``stop()``, by the
    last data subscriber detaching, or by the factory starting a replacement
    for the same subject.
    """

    def __init__(
        self,
        subject: PollSubject,
        interval_s: float,
        fetch: Callable[[], Awaitable[T | None]],
        on_stop: Callable[["PollSession[T]"], None] | None = None,
    ):
        """
        Initialize poll session.

        Args:
            subject: Subject this session polls for
            interval_s: Seconds between fetch dispatches
            fetch: Coroutine factory called once per tick
            on_stop: Called once when the session stops
        """
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.subject = subject
        self._interval_s = interval_s
        self._fetch = fetch
        self._on_stop = on_stop

        self._active = False
        self._timer: asyncio.Task[None] | None = None
        self._in_flight: set[asyncio.Task[None]] = set()
        self._callbacks: list[DataCallback] = []

        # Stats
        self.ticks = 0
        self.errors = 0
        self.deliveries = 0

    @property
    def active(self) -> bool:
        """True from start until stop."""
        return self._active

    @property
    def in_flight(self) -> int:
        """Number of fetches dispatched but not yet finished."""
        return len(self._in_flight)

    def on_data(self, callback: DataCallback) -> DataSubscription:
        """
        Register a callback for fetched results.

        Returns:
            Handle that detaches the callback; detaching the last one stops the session
        """
        self._callbacks.append(callback)
        return DataSubscription(self, callback)

    def _start(self) -> None:
        if self._active:
            return
        self._active = True
        self._timer = asyncio.get_running_loop().create_task(
            self._run(), name=f"poll:{self.subject}"
        )
        logger.info(
            "Poll session started for %s (interval: %.1fs)",
            self.subject,
            self._interval_s,
        )

    async def _run(self) -> None:
        """Timer loop: dispatch a fetch, then wait one interval."""
        while self._active:
            self._dispatch()
            await asyncio.sleep(self._interval_s)

    def _dispatch(self) -> None:
        self.ticks += 1
        task = asyncio.get_running_loop().create_task(self._fetch_once(self.ticks))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _fetch_once(self, tick: int) -> None:
        try:
            result = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.errors += 1
            logger.warning("Poll tick %d for %s failed: %s", tick, self.subject, e)
            return

        # Stopped while the fetch was outstanding: result is inert
        if not self._active or result is None:
            return

        self.deliveries += 1
        for callback in list(self._callbacks):
            try:
                callback(result)
            except Exception:
                logger.exception("Error in poll callback for %s", self.subject)

    def _detach(self, callback: DataCallback) -> None:
        for index, candidate in enumerate(self._callbacks):
            if candidate is callback:
                del self._callbacks[index]
                break
        if not self._callbacks:
            self.stop()

    def stop(self) -> None:
        """Stop the timer and make every in-flight fetch inert. Idempotent."""
        if not self._active:
            return
        self._active = False
        if self._timer is not None:
            self._timer.cancel()
        for task in list(self._in_flight):
            task.cancel()
        self._callbacks.clear()
        logger.info("Poll session stopped for %s", self.subject)
        if self._on_stop is not None:
            self._on_stop(self)

    async def aclose(self) -> None:
        """Stop and wait for the timer and in-flight fetches to unwind."""
        self.stop()
        pending = [t for t in (self._timer, *self._in_flight) if t is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> "PollSession[T]":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


class PollingStreamFactory:
    """
    Creates poll sessions and keeps at most one live session per subject.
    """

    def __init__(self) -> None:
        self._sessions: dict[PollSubject, PollSession[Any]] = {}

    def start(
        self,
        subject: PollSubject,
        interval_s: float,
        fetch: Callable[[], Awaitable[T | None]],
    ) -> PollSession[T]:
        """
        Start polling ``fetch`` for ``subject``.

        The first fetch is dispatched immediately. A live session already
        registered for the same subject is stopped first.

        Args:
            subject: Subject to poll for
            interval_s: Seconds between fetches
            fetch: Coroutine factory

        Returns:
            The new session
        """
        existing = self._sessions.get(subject)
        if existing is not None and existing.active:
            logger.warning("Replacing live poll session for %s", subject)
            existing.stop()

        session: PollSession[T] = PollSession(subject, interval_s, fetch, on_stop=self._forget)
        self._sessions[subject] = session
        session._start()
        return session

    def _forget(self, session: PollSession[Any]) -> None:
        if self._sessions.get(session.subject) is session:
            del self._sessions[session.subject]

    def active_subjects(self) -> list[PollSubject]:
        """Subjects that currently have a live session."""
        return [s for s, session in self._sessions.items() if session.active]

    def get(self, subject: PollSubject) -> PollSession[Any] | None:
        return self._sessions.get(subject)

    def stop_all(self) -> None:
        """Stop every live session."""
        for session in list(self._sessions.values()):
            session.stop()

    async def aclose(self) -> None:
        """Stop every session and wait for them to unwind."""
        sessions = list(self._sessions.values())
        await asyncio.gather(*(s.aclose() for s in sessions), return_exceptions=True)
