"""
Snapshot Engine for Ghii.

The engine turns a schema and a list of loaders into validated,
versioned configuration snapshots.

Pipeline (one take_snapshot() call):
    1. Defaults derived from the schema
    2. All loaders run concurrently, every one settles
    3. Loader failures handled per LoaderPolicy
    4. Deep merge: defaults < loader #0 < loader #1 < ...
    5. Validation against the schema (complete violation list)
    6. Publication: history append + lifecycle events

Example:
    schema = ConfigSchema().section("server", Server)

    engine = (
        Ghii(schema)
        .loader(yaml_loader("config", "server.yaml"))
        .loader(http_loader("https://config.internal/server.json"))
    )

    engine.on(SnapshotEvent.NEW, lambda e: print(e.diff))
    config = await engine.take_snapshot()
"""

from __future__ import annotations

import copy
import inspect
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from .activation import ActivationTarget, ModuleActivation
from .diff import compute_diff, deep_equal
from .errors import LoaderFailureError, SnapshotValidationError
from .events import (
    BreakingChange,
    EventBus,
    FirstSnapshot,
    Handler,
    NewSnapshot,
    SnapshotEvent,
)
from .history import SnapshotVersion, VersionHistory
from .loaders import Loader, LoaderRegistry
from .merge import deep_merge
from .rendezvous import OnFirstSnapshot, OnTimeout, RendezvousCoordinator
from .schema import BreakingPredicate, Validator
from .settings import GhiiSettings, LoaderPolicy, get_settings

logger = logging.getLogger(__name__)

_DEFAULT = object()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Ghii:
    """
    Configuration snapshot engine.

    All state (loaders, history, subscribers) belongs to the instance, so
    several independent engines can live in one process.

    Args:
        schema: Validator for the merged tree (usually a ConfigSchema)
        settings: Engine settings (defaults to get_settings())
        loader_policy: Overrides settings.loader_policy for this engine
        clock: Source of version timestamps
    """

    def __init__(
        self,
        schema: Validator,
        *,
        settings: GhiiSettings | None = None,
        loader_policy: LoaderPolicy | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._schema = schema
        self._settings = settings or get_settings()
        self._loader_policy = LoaderPolicy(loader_policy or self._settings.loader_policy)
        self._clock = clock

        self._loaders = LoaderRegistry()
        self._history = VersionHistory()
        self._events = EventBus()
        self._rendezvous = RendezvousCoordinator(self)
        self._breaking: dict[str, BreakingPredicate] = {}

        for section in getattr(schema, "sections", []):
            if section.breaking is not None:
                self._breaking[section.name] = section.breaking

    # =========================================================================
    # Registration
    # =========================================================================

    @property
    def schema(self) -> Validator:
        return self._schema

    @property
    def loader_policy(self) -> LoaderPolicy:
        return self._loader_policy

    @property
    def loaders(self) -> LoaderRegistry:
        return self._loaders

    def loader(self, loader: Loader, *, name: str | None = None) -> "Ghii":
        """Register a loader (fluent). Later loaders override earlier ones."""
        self._loaders.register(loader, name=name)
        return self

    def on_breaking_change(self, section: str, predicate: BreakingPredicate) -> "Ghii":
        """
        Flag incompatible transitions of a section (fluent).

        predicate(old_value, new_value) is evaluated whenever a new version
        follows an existing one; True emits SnapshotEvent.BREAKING.
        """
        self._breaking[section] = predicate
        return self

    def on(self, event: SnapshotEvent, handler: Handler) -> Callable[[], None]:
        """Subscribe to a lifecycle event. Returns an unsubscribe callable."""
        return self._events.on(event, handler)

    def once(self, event: SnapshotEvent, handler: Handler) -> Callable[[], None]:
        """Subscribe to the next occurrence of a lifecycle event."""
        return self._events.once(event, handler)

    def off(self, event: SnapshotEvent, handler: Handler) -> bool:
        return self._events.off(event, handler)

    def listener_count(self, event: SnapshotEvent) -> int:
        return self._events.listener_count(event)

    # =========================================================================
    # Snapshot pipeline
    # =========================================================================

    def defaults(self) -> dict[str, Any]:
        """Tree of schema-declared defaults."""
        return self._schema.create_defaults()

    async def take_snapshot(self) -> dict[str, Any]:
        """
        Load, merge, validate and publish a new snapshot.

        Returns:
            The merged, validated configuration tree

        Raises:
            LoaderFailureError: A loader failed and the policy is STRICT
            SnapshotValidationError: The merged tree violates the schema
        """
        defaults = self.defaults()

        logger.debug(f"[engine] Running {len(self._loaders)} loader(s)")
        outcomes = await self._loaders.run_all()

        failures = [o.error for o in outcomes if o.error is not None]
        if failures:
            if self._loader_policy is LoaderPolicy.STRICT:
                raise LoaderFailureError(failures)
            for error in failures:
                logger.warning(f"[engine] Ignoring failed loader: {error}")

        merged = deep_merge(defaults, *(o.value for o in outcomes if o.ok))

        violations = self._schema.validate(merged)
        if inspect.isawaitable(violations):
            violations = await violations
        if violations:
            logger.debug(f"[engine] Validation failed with {len(violations)} violation(s)")
            raise SnapshotValidationError(list(violations))

        self.snapshot(merged)
        return merged

    def snapshot(self, new_value: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """
        Read or publish the current snapshot.

        Without an argument, returns the latest published value, or the
        schema defaults when nothing was published yet.

        With an argument, records a new version if it differs from the
        latest one and emits FIRST (first version only), NEW and any
        BREAKING events. Publishing an equal value is a no-op.

        Returns:
            Copy of the current snapshot
        """
        previous = self._history.peek_latest_value()

        if new_value is None:
            if previous is None:
                return self.defaults()
            return copy.deepcopy(previous)

        if previous is not None and deep_equal(previous, new_value):
            return copy.deepcopy(previous)

        value = copy.deepcopy(dict(new_value))
        version = self._history.append(value, self._clock())
        logger.info(
            f"[engine] Published version {len(self._history)} "
            f"at {version.timestamp.isoformat()}"
        )
        self._publish(version, copy.deepcopy(previous))
        return copy.deepcopy(value)

    def _publish(self, version: SnapshotVersion, previous: dict[str, Any] | None) -> None:
        # Subscribers may mutate their payloads; predicates only see private copies
        current = copy.deepcopy(version.value)

        if previous is None:
            self._events.emit(FirstSnapshot())

        diff = compute_diff(copy.deepcopy(previous), version.value) if previous is not None else []
        self._events.emit(NewSnapshot(version=version, diff=diff))

        if previous is None:
            return

        for section, predicate in self._breaking.items():
            old_value = previous.get(section)
            new_value = current.get(section)
            if predicate(copy.deepcopy(old_value), copy.deepcopy(new_value)):
                logger.info(f"[engine] Breaking change in section '{section}'")
                self._events.emit(
                    BreakingChange(
                        section=section,
                        old_value=copy.deepcopy(old_value),
                        new_value=copy.deepcopy(new_value),
                    )
                )

    # =========================================================================
    # History
    # =========================================================================

    def history(self) -> list[SnapshotVersion]:
        """All published versions, oldest first (deep copy)."""
        return self._history.history()

    def latest_version(self) -> SnapshotVersion | None:
        """Newest published version (deep copy), or None."""
        return self._history.latest_version()

    # =========================================================================
    # Rendezvous
    # =========================================================================

    async def wait_for_first_snapshot(
        self,
        *module_path: str,
        timeout: float | None | object = _DEFAULT,
        on_timeout: OnTimeout | None = None,
        on_first_snapshot: OnFirstSnapshot | None = None,
        activation: ActivationTarget | None = None,
    ) -> dict[str, Any]:
        """
        Wait until a snapshot exists, taking one if needed.

        Args:
            *module_path: Module to import once ready, joined with dots
            timeout: Seconds before giving up, counted from the call even when a
                snapshot already exists (None or <= 0 disables it)
            on_timeout: Called once if the wait times out
            on_first_snapshot: Called (and awaited) with the snapshot when ready;
                takes precedence over activation
            activation: Target to activate once ready

        Returns:
            The snapshot

        Raises:
            RendezvousTimeoutError: No snapshot was ready in time
            ActivationError: The activation target failed
            LoaderFailureError / SnapshotValidationError: The snapshot failed
        """
        if module_path and activation is not None:
            raise ValueError("Pass either a module path or an activation target, not both")
        if module_path:
            activation = ModuleActivation(*module_path)
        if timeout is _DEFAULT:
            timeout = self._settings.wait_timeout

        return await self._rendezvous.wait_for_first_snapshot(
            timeout=timeout,
            on_timeout=on_timeout,
            on_first_snapshot=on_first_snapshot,
            activation=activation,
        )

    def __repr__(self) -> str:
        return (
            f"Ghii(loaders={len(self._loaders)}, versions={len(self._history)}, "
            f"policy={self._loader_policy.value})"
        )
