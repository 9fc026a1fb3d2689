"""
Ghii - validated, versioned runtime configuration for asyncio applications.

Ghii assembles configuration from schema defaults and any number of
asynchronous loaders, and keeps every accepted version:

- **Schema**: pydantic models or annotations per section, with defaults
- **Loaders**: YAML files, HTTP endpoints or any async callable
- **Snapshots**: merged, validated, immutable configuration trees
- **History**: append-only versions with timestamps and diffs
- **Events**: first snapshot, new snapshot, breaking change
- **Rendezvous**: wait for the first snapshot before starting a module

Quick Start:
    >>> from pydantic import BaseModel
    >>> from ghii import ConfigSchema, Ghii, yaml_loader
    >>>
    >>> class Server(BaseModel):
    ...     host: str = "0.0.0.0"
    ...     port: int = 8080
    >>>
    >>> engine = Ghii(ConfigSchema().section("server", Server))
    >>> engine.loader(yaml_loader("config", "server.yaml"))
    >>> config = await engine.wait_for_first_snapshot(timeout=5.0)
"""

__version__ = "0.1.0"
__license__ = "MIT"

from ghii.activation import ActivationTarget, CallableActivation, ModuleActivation
from ghii.diff import DiffEntry, DiffOp, compute_diff, deep_equal
from ghii.engine import Ghii
from ghii.errors import (
    ActivationError,
    GhiiError,
    LoaderError,
    LoaderFailureError,
    RendezvousTimeoutError,
    SnapshotValidationError,
    SourceNotFoundError,
    SourceUnavailableError,
)
from ghii.events import (
    BreakingChange,
    EventBus,
    FirstSnapshot,
    LifecycleEvent,
    NewSnapshot,
    SnapshotEvent,
)
from ghii.history import SnapshotVersion, VersionHistory
from ghii.loaders import (
    HttpLoader,
    Loader,
    LoaderOutcome,
    LoaderRegistry,
    StaticLoader,
    YamlFileLoader,
    http_loader,
    static_loader,
    yaml_loader,
)
from ghii.merge import deep_merge
from ghii.rendezvous import RendezvousCoordinator, RendezvousState
from ghii.schema import ConfigSchema, Section, Validator, Violation
from ghii.settings import GhiiSettings, LoaderPolicy, get_settings

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Engine
    "Ghii",
    "GhiiSettings",
    "LoaderPolicy",
    "get_settings",
    # Schema
    "ConfigSchema",
    "Section",
    "Validator",
    "Violation",
    # Loaders
    "Loader",
    "LoaderOutcome",
    "LoaderRegistry",
    "YamlFileLoader",
    "HttpLoader",
    "StaticLoader",
    "yaml_loader",
    "http_loader",
    "static_loader",
    # Snapshots
    "SnapshotVersion",
    "VersionHistory",
    "deep_merge",
    "DiffEntry",
    "DiffOp",
    "compute_diff",
    "deep_equal",
    # Events
    "SnapshotEvent",
    "LifecycleEvent",
    "FirstSnapshot",
    "NewSnapshot",
    "BreakingChange",
    "EventBus",
    # Rendezvous
    "RendezvousCoordinator",
    "RendezvousState",
    "ActivationTarget",
    "ModuleActivation",
    "CallableActivation",
    # Errors
    "GhiiError",
    "LoaderError",
    "LoaderFailureError",
    "SnapshotValidationError",
    "RendezvousTimeoutError",
    "ActivationError",
    "SourceUnavailableError",
    "SourceNotFoundError",
]
