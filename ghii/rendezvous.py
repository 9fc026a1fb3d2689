"""
Rendezvous on the first configuration snapshot.

Lets other parts of a process defer their start until a valid
configuration exists:

    config = await engine.wait_for_first_snapshot(timeout=10.0)

Each call runs its own small state machine:

    IDLE ──snapshot exists──────────────> READYING ──> RESOLVED
      │                                      │  └────> FAILED (callback/activation)
      └──no snapshot──> LOADING ──ready──────┘
                           ├──load fails──> FAILED
                           └──timeout─────> TIMED_OUT

The timeout covers the whole call on both paths: a callback or activation
that hangs after the snapshot exists still times out (READYING -> TIMED_OUT).

RESOLVED, FAILED and TIMED_OUT are terminal. Reaching any of them
releases the timer and the first-snapshot subscription of that call.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import ActivationError, RendezvousTimeoutError
from .events import SnapshotEvent

if TYPE_CHECKING:
    from .activation import ActivationTarget
    from .engine import Ghii

logger = logging.getLogger(__name__)

OnTimeout = Callable[[], Any]
OnFirstSnapshot = Callable[[dict[str, Any]], Any]


class RendezvousState(Enum):
    """States of a single wait_for_first_snapshot call."""

    IDLE = "idle"
    LOADING = "loading"
    READYING = "readying"
    RESOLVED = "resolved"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (RendezvousState.RESOLVED, RendezvousState.FAILED, RendezvousState.TIMED_OUT)


class Rendezvous:
    """
    One pending wait for the first snapshot.

    Created by RendezvousCoordinator; use engine.wait_for_first_snapshot()
    rather than instantiating directly.
    """

    def __init__(
        self,
        engine: "Ghii",
        *,
        timeout: float | None,
        on_timeout: OnTimeout | None = None,
        on_first_snapshot: OnFirstSnapshot | None = None,
        activation: "ActivationTarget | None" = None,
        tasks: set[asyncio.Task] | None = None,
    ):
        self._engine = engine
        self._tasks = tasks if tasks is not None else set()
        self._timeout = timeout if timeout and timeout > 0 else None
        self._on_timeout = on_timeout
        self._on_first_snapshot = on_first_snapshot
        self._activation = activation

        self._state = RendezvousState.IDLE
        self._future: asyncio.Future[dict[str, Any]] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._load_task: asyncio.Task | None = None
        self._ready_task: asyncio.Task | None = None

    @property
    def state(self) -> RendezvousState:
        return self._state

    async def wait(self) -> dict[str, Any]:
        """Run the rendezvous to a terminal state and return the snapshot."""
        if self._state is not RendezvousState.IDLE:
            raise RuntimeError("Rendezvous can only be awaited once")

        loop = asyncio.get_running_loop()
        self._future = loop.create_future()

        try:
            if self._timeout is not None:
                self._timer = loop.call_later(self._timeout, self._on_timer)

            latest = self._engine.latest_version()
            if latest is not None:
                self._begin_ready(latest.value)
            else:
                self._transition(RendezvousState.LOADING)
                self._unsubscribe = self._engine.once(SnapshotEvent.FIRST, self._on_first_event)
                self._load_task = self._spawn(self._load())

            return await self._future
        finally:
            self._release()

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    async def _load(self) -> None:
        try:
            value = await self._engine.take_snapshot()
        except Exception as e:
            if self._state is RendezvousState.LOADING:
                self._fail(e)
            else:
                logger.debug(f"[rendezvous] Load failed after leaving LOADING: {e}")
            return
        self._begin_ready(value)

    def _on_first_event(self, _payload: Any) -> None:
        # Fired synchronously while any publisher records the first version
        self._begin_ready(self._engine.snapshot())

    def _begin_ready(self, value: dict[str, Any]) -> None:
        if self._state not in (RendezvousState.IDLE, RendezvousState.LOADING):
            return
        self._transition(RendezvousState.READYING)
        self._drop_subscription()
        self._ready_task = self._spawn(self._ready(copy.deepcopy(value)))

    async def _ready(self, value: dict[str, Any]) -> None:
        try:
            if self._on_first_snapshot is not None:
                result = self._on_first_snapshot(copy.deepcopy(value))
                if inspect.isawaitable(result):
                    await result
            elif self._activation is not None:
                await self._activate()
        except Exception as e:
            self._fail(e)
            return
        self._resolve(value)

    async def _activate(self) -> None:
        try:
            await self._activation.activate()
        except ActivationError:
            raise
        except Exception as e:
            raise ActivationError(self._activation, e) from e
        logger.debug(f"[rendezvous] Activated {self._activation!r}")

    def _on_timer(self) -> None:
        self._timer = None
        if self._state.is_terminal:
            return

        logger.warning(f"[rendezvous] No snapshot after {self._timeout}s ({self._state.value})")
        self._drop_subscription()
        self._finish(RendezvousState.TIMED_OUT, error=RendezvousTimeoutError(self._timeout))
        if self._ready_task is not None and not self._ready_task.done():
            self._ready_task.cancel()

        if self._on_timeout is not None:
            try:
                self._on_timeout()
            except Exception:
                logger.exception("[rendezvous] on_timeout callback failed")

    # -------------------------------------------------------------------------
    # Terminal transitions
    # -------------------------------------------------------------------------

    def _resolve(self, value: dict[str, Any]) -> None:
        self._finish(RendezvousState.RESOLVED, value=value)

    def _fail(self, error: BaseException) -> None:
        self._finish(RendezvousState.FAILED, error=error)

    def _finish(
        self,
        state: RendezvousState,
        *,
        value: dict[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        if self._state.is_terminal or self._future is None or self._future.done():
            return
        self._transition(state)
        if error is not None:
            self._future.set_exception(error)
        else:
            self._future.set_result(value)
        self._cancel_timer()

    def _transition(self, state: RendezvousState) -> None:
        logger.debug(f"[rendezvous] {self._state.value} -> {state.value}")
        self._state = state

    # -------------------------------------------------------------------------
    # Resource release
    # -------------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _drop_subscription(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _spawn(self, coro: Any) -> asyncio.Task:
        # Strong reference until done; the loop only keeps weak ones
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _release(self) -> None:
        if not self._state.is_terminal:
            # Caller cancelled the wait
            self._transition(RendezvousState.FAILED)
        self._cancel_timer()
        self._drop_subscription()
        if self._ready_task is not None and not self._ready_task.done():
            self._ready_task.cancel()


class RendezvousCoordinator:
    """
    Creates and tracks rendezvous calls for one engine.

    Calls are independent: each has its own timer, subscription and
    terminal state.
    """

    def __init__(self, engine: "Ghii"):
        self._engine = engine
        self._pending: set[Rendezvous] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of calls not yet in a terminal state."""
        return len(self._pending)

    async def wait_for_first_snapshot(
        self,
        *,
        timeout: float | None,
        on_timeout: OnTimeout | None = None,
        on_first_snapshot: OnFirstSnapshot | None = None,
        activation: "ActivationTarget | None" = None,
    ) -> dict[str, Any]:
        rendezvous = Rendezvous(
            self._engine,
            timeout=timeout,
            on_timeout=on_timeout,
            on_first_snapshot=on_first_snapshot,
            activation=activation,
            tasks=self._tasks,
        )
        self._pending.add(rendezvous)
        try:
            return await rendezvous.wait()
        finally:
            self._pending.discard(rendezvous)
