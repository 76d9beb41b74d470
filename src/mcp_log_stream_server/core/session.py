"""Session controller for one logical log viewing session.

A session owns exactly one buffer (with its dedup set) per generation and
drives the connect / stream / pause / error / reconnect state machine. The
single-pod and fan-out variants share this controller and differ only in
their ``ReconnectPolicy``: manual for a single pod (the caller offers a
retry action), fixed backoff for a selector group.

Any reset aborts every outstanding reader *before* the buffer is replaced,
and each reader carries the generation it was started for; lines arriving
for an older generation are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from functools import partial

from pydantic import BaseModel, Field

from .aggregator import Aggregator
from .buffer import BoundedLineBuffer
from .config import StreamConfig
from .export import export_text
from .locator import SourceLocator, locator_for
from .models import FilterCriteria, LogLine, LogTarget, ReconnectPolicy, SessionState, Source
from .search import filter_lines
from .transport import LogTransport

logger = logging.getLogger(__name__)

LineListener = Callable[[LogLine], object]


class SessionSnapshot(BaseModel):
    session_key: int
    state: SessionState
    target: str
    namespace: str
    live: bool
    enabled: bool
    error: str | None = None
    source_errors: dict[str, str] = Field(default_factory=dict)
    sources: list[str] = Field(default_factory=list)
    buffered: int = 0
    capacity: int = 0
    dropped: int = 0
    history_fetched: bool = False


def default_policy(target: LogTarget, config: StreamConfig) -> ReconnectPolicy:
    if target.fan_out:
        return ReconnectPolicy.backoff(config.reconnect_interval)
    return ReconnectPolicy.manual()


class LogSession:
    """State machine + buffer owner for a single viewing session."""

    def __init__(
        self,
        target: LogTarget,
        transport: LogTransport,
        *,
        policy: ReconnectPolicy | None = None,
        config: StreamConfig | None = None,
        session_key: int = 0,
    ) -> None:
        self._config = config or StreamConfig()
        self._transport = transport
        self._target = target
        self._policy_override = policy
        self._policy = policy or default_policy(target, self._config)
        self._locator: SourceLocator = locator_for(target, transport)

        self.session_key = session_key
        self.state = SessionState.IDLE
        self.error: str | None = None
        self.source_errors: dict[str, str] = {}
        self.sources: list[Source] = []

        self._buffer = BoundedLineBuffer(self._config.capacity)
        self._generation = 0
        self._history_fetched = False
        self._enabled = False
        self._live = True
        self._criteria = FilterCriteria()
        self._task: asyncio.Task[None] | None = None
        self._aggregator: Aggregator | None = None
        self._listeners: list[LineListener] = []
        self._waiters: list[tuple[asyncio.Future[SessionState], frozenset[SessionState]]] = []

    # -- read side -----------------------------------------------------

    @property
    def target(self) -> LogTarget:
        return self._target

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def buffer(self) -> BoundedLineBuffer:
        return self._buffer

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def live(self) -> bool:
        return self._live

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def history_fetched(self) -> bool:
        return self._history_fetched

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    def partial_tails(self) -> dict[str, str]:
        """Unterminated fragments currently held by the active readers."""
        if self._aggregator is None:
            return {}
        return {sid: f.tail for sid, f in self._aggregator.framers.items() if f.tail}

    def set_filter(self, criteria: FilterCriteria) -> None:
        self._criteria = criteria

    def view(self, criteria: FilterCriteria | None = None) -> list[LogLine]:
        """Filtered view of the current buffer; the buffer itself is untouched."""
        return filter_lines(self._buffer.lines(), criteria or self._criteria)

    def export_text(self) -> str:
        return export_text(self.view())

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_key=self.session_key,
            state=self.state,
            target=self._target.name,
            namespace=self._target.namespace,
            live=self._live,
            enabled=self._enabled,
            error=self.error,
            source_errors=dict(self.source_errors),
            sources=[s.id for s in self.sources],
            buffered=len(self._buffer),
            capacity=self._buffer.capacity,
            dropped=self._buffer.dropped,
            history_fetched=self._history_fetched,
        )

    def subscribe(self, listener: LineListener) -> Callable[[], None]:
        """Call ``listener`` for every newly appended line; returns an unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def wait_for_state(self, *states: SessionState, timeout: float | None = None) -> SessionState:
        """Wait until the session enters one of ``states``."""
        if self.state in states:
            return self.state
        fut: asyncio.Future[SessionState] = asyncio.get_running_loop().create_future()
        self._waiters.append((fut, frozenset(states)))
        return await asyncio.wait_for(fut, timeout)

    # -- control surface ------------------------------------------------

    async def enable(self, enabled: bool) -> None:
        """Open (or tear down) the session."""
        if enabled == self._enabled:
            return
        self._enabled = enabled
        if enabled:
            self._start_if_ready()
            return
        self.session_key += 1
        await self._abort()
        self._reset_buffers()
        self.error = None
        self._set_state(SessionState.IDLE)

    async def set_live(self, live: bool) -> None:
        """Pause or resume streaming; the buffer survives a pause."""
        if live == self._live:
            return
        self._live = live
        if not self._enabled:
            return
        if not live:
            await self._abort()
            self._set_state(SessionState.PAUSED)
            return
        self._start_if_ready()

    async def reconnect(self) -> None:
        """Explicit reconnect: bump the session key and start from scratch."""
        self.session_key += 1
        logger.info("Reconnecting log session for %s (key=%d)", self._target.name, self.session_key)
        await self._full_reset()

    async def set_target(self, target: LogTarget) -> None:
        """Switch to another target; this always resets the session."""
        if target == self._target:
            return
        self._target = target
        self._policy = self._policy_override or default_policy(target, self._config)
        self._locator = locator_for(target, self._transport)
        self.session_key += 1
        await self._full_reset()

    async def close(self) -> None:
        """Release the session; readers are aborted, the buffer is left as is."""
        self._enabled = False
        await self._abort()
        self._set_state(SessionState.IDLE)

    # -- sink -----------------------------------------------------------

    def ingest(self, generation: int, source_id: str, text: str, label: str | None = None) -> bool:
        """Append a framed line on behalf of a reader of ``generation``."""
        if generation != self._generation:
            logger.debug("Dropping line from stale reader %s (generation %d)", source_id, generation)
            return False
        line = self._buffer.append(source_id, text, label=label)
        if line is None:
            return False
        for listener in list(self._listeners):
            listener(line)
        return True

    # -- internals ------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if state is self.state:
            return
        logger.debug("Log session %s: %s -> %s", self._target.name, self.state.value, state.value)
        self.state = state
        pending = []
        for fut, wanted in self._waiters:
            if fut.done():
                continue
            if state in wanted:
                fut.set_result(state)
            else:
                pending.append((fut, wanted))
        self._waiters = pending

    def _reset_buffers(self) -> None:
        self._buffer = BoundedLineBuffer(self._config.capacity)
        self._history_fetched = False
        self.source_errors = {}
        self.sources = []

    async def _abort(self) -> None:
        task, self._task = self._task, None
        # Bump first so nothing from the old readers lands after this point.
        self._generation += 1
        self._aggregator = None
        if task is not None and not task.done():
            task.cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _full_reset(self) -> None:
        await self._abort()
        self._reset_buffers()
        self.error = None
        if self._enabled and not self._target.is_empty:
            self._live = True
            self._start_if_ready()
            return
        self._set_state(SessionState.IDLE)

    def _start_if_ready(self) -> None:
        if not self._enabled or self._target.is_empty:
            return
        if not self._live:
            self._set_state(SessionState.PAUSED)
            return
        if self._task is not None and not self._task.done():
            return
        self.error = None
        self._set_state(SessionState.CONNECTING)
        generation = self._generation
        self._task = asyncio.create_task(
            self._run(generation), name=f"log-session:{self._target.name}"
        )

    def _on_first_chunk(self, generation: int, source: Source) -> None:
        if generation != self._generation:
            return
        self._history_fetched = True
        if self.state in (SessionState.CONNECTING, SessionState.RECONNECTING):
            self._set_state(SessionState.STREAMING)

    def _on_source_error(self, generation: int, source: Source, message: str) -> None:
        if generation == self._generation:
            self.source_errors[source.id] = message

    async def _attempt(self, generation: int) -> str | None:
        """One connect attempt; returns an error message or None on a clean end."""
        # Resolved once per session; resume and retry reuse them until a reset.
        if not self.sources:
            try:
                self.sources = await self._locator.resolve()
            except Exception as exc:
                return str(exc) or "Failed to resolve log sources"
        sources = list(self.sources)
        if self._locator.fan_out:
            self._set_state(SessionState.STREAMING)

        tail_lines = None if self._history_fetched else self._config.tail_lines
        aggregator = Aggregator(
            self._transport,
            sources,
            partial(self.ingest, generation),
            tail_lines=tail_lines,
            limit_bytes=self._config.limit_bytes,
            tag_sources=self._locator.fan_out,
            on_first_chunk=partial(self._on_first_chunk, generation),
            on_source_error=partial(self._on_source_error, generation),
        )
        self._aggregator = aggregator
        result = await aggregator.run()

        if not result.failed:
            return None
        # Readers that ended cleanly cannot recover the ones that failed.
        return next(reversed(result.failed.values()))

    async def _run(self, generation: int) -> None:
        while True:
            failure = await self._attempt(generation)
            if generation != self._generation:
                return

            if failure is None:
                logger.info("Log stream for %s ended", self._target.name)
                self._set_state(SessionState.IDLE)
                return

            self.error = failure
            logger.warning("Log session for %s failed: %s", self._target.name, failure)
            self._set_state(SessionState.ERROR)

            if not self._policy.automatic:
                return

            await asyncio.sleep(self._policy.interval)
            if generation != self._generation or not self._enabled or not self._live:
                return
            self._set_state(SessionState.RECONNECTING)
            self.error = None
            self._set_state(SessionState.CONNECTING)
