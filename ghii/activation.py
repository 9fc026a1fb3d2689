"""
Deferred activation targets.

An activation target is something that must not start until the first
configuration snapshot exists: typically a module whose import reads the
configuration at import time, or an async initializer.

    await engine.wait_for_first_snapshot("myapp", "services", "billing")
    await engine.wait_for_first_snapshot(activation=CallableActivation(start_workers))
"""

from __future__ import annotations

import importlib
import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ActivationTarget(Protocol):
    """Capability the rendezvous needs: activate, or raise."""

    async def activate(self) -> Any:
        ...


class ModuleActivation:
    """
    Activates a module by importing it.

    Path parts are joined with dots, so ("myapp", "billing") imports
    myapp.billing.
    """

    def __init__(self, *module_path: str):
        parts = [p.strip(".") for p in module_path if p and p.strip(".")]
        if not parts:
            raise ValueError("ModuleActivation requires a module path")
        self.module_name = ".".join(parts)

    async def activate(self) -> Any:
        logger.debug(f"[activation] Importing {self.module_name}")
        return importlib.import_module(self.module_name)

    def __repr__(self) -> str:
        return f"ModuleActivation({self.module_name!r})"


class CallableActivation:
    """Activates by calling a function; coroutine results are awaited."""

    def __init__(self, func: Callable[[], Any]):
        self._func = func

    async def activate(self) -> Any:
        result = self._func()
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        return f"CallableActivation({name})"
