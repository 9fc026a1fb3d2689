"""
Configuration Loaders.

A loader is any zero-argument callable returning an awaitable mapping:

    async def from_env() -> dict[str, Any]:
        return {"server": {"port": int(os.environ["PORT"])}}

Loaders are registered in order on a LoaderRegistry. Order decides merge
priority (last registered wins) but not execution order: run_all() starts
every loader before awaiting any of them and waits for all to settle.

Built-in sources:
    - YamlFileLoader / yaml_loader(): a YAML file on disk
    - HttpLoader / http_loader(): a JSON or YAML document over HTTP
    - StaticLoader / static_loader(): a fixed in-memory tree

Usage:
    registry = LoaderRegistry()
    registry.register(yaml_loader("config", "app.yaml"))
    registry.register(http_loader("https://config.internal/app.json"))

    outcomes = await registry.run_all()
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import yaml

from .errors import LoaderError, SourceNotFoundError, SourceUnavailableError

logger = logging.getLogger(__name__)

ConfigTree = dict[str, Any]
Loader = Callable[[], Awaitable[Mapping[str, Any] | None]]


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True, slots=True)
class RegisteredLoader:
    """A loader with its registration index and display name."""

    index: int
    name: str
    loader: Loader


@dataclass(frozen=True, slots=True)
class LoaderOutcome:
    """Settled result of one loader: either a tree or an error."""

    index: int
    name: str
    value: ConfigTree | None = None
    error: LoaderError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LoaderRegistry:
    """
    Ordered collection of configuration loaders.

    Example:
        registry = LoaderRegistry()
        registry.register(static_loader({"a": 1}))
        registry.register(fetch_remote, name="remote")

        outcomes = await registry.run_all()
        failures = [o.error for o in outcomes if not o.ok]
    """

    def __init__(self) -> None:
        self._loaders: list[RegisteredLoader] = []

    def register(self, loader: Loader, *, name: str | None = None) -> RegisteredLoader:
        """
        Append a loader.

        Args:
            loader: Zero-argument async callable returning a mapping
            name: Display name for errors and logs (defaults to the callable's name)

        Returns:
            The registration record
        """
        if not callable(loader):
            raise TypeError(f"Loader must be callable, got {type(loader).__name__}")

        entry = RegisteredLoader(
            index=len(self._loaders),
            name=name or _loader_name(loader),
            loader=loader,
        )
        self._loaders.append(entry)
        logger.debug(f"[loaders] Registered loader #{entry.index}: {entry.name}")
        return entry

    async def run_all(self) -> list[LoaderOutcome]:
        """
        Run every loader concurrently and wait for all to settle.

        Failures never cancel sibling loaders; each one is captured as a
        LoaderError attributed to its loader.

        Returns:
            One outcome per loader, in registration order
        """
        if not self._loaders:
            return []
        return list(await asyncio.gather(*(self._run_one(entry) for entry in self._loaders)))

    async def _run_one(self, entry: RegisteredLoader) -> LoaderOutcome:
        try:
            result = await entry.loader()
            if result is None:
                result = {}
            if not isinstance(result, Mapping):
                raise TypeError(f"Loader returned {type(result).__name__}, expected a mapping")
        except Exception as e:
            logger.debug(f"[loaders] Loader #{entry.index} '{entry.name}' failed: {e}")
            error = LoaderError(entry.index, entry.name, e)
            error.__cause__ = e
            return LoaderOutcome(index=entry.index, name=entry.name, error=error)

        return LoaderOutcome(index=entry.index, name=entry.name, value=dict(result))

    @property
    def names(self) -> list[str]:
        return [entry.name for entry in self._loaders]

    def __len__(self) -> int:
        return len(self._loaders)

    def __iter__(self) -> Iterator[RegisteredLoader]:
        return iter(list(self._loaders))

    def __repr__(self) -> str:
        return f"LoaderRegistry(loaders={self.names})"


def _loader_name(loader: Any) -> str:
    name = getattr(loader, "name", None)
    if isinstance(name, str) and name:
        return name
    return getattr(loader, "__name__", None) or type(loader).__name__


# =============================================================================
# Sources
# =============================================================================


class YamlFileLoader:
    """
    Loads a configuration tree from a YAML file.

    The path must exist when the loader is created. At load time the path
    must still exist and be a regular file; an empty document loads as {}.

    Usage:
        loader = YamlFileLoader(Path("config/app.yaml"))
        tree = await loader()
    """

    def __init__(self, path: str | Path):
        """
        Initialize loader.

        Args:
            path: Path of the YAML document

        Raises:
            SourceNotFoundError: If the path does not exist
        """
        self._path = Path(path)
        if not self._path.exists():
            raise SourceNotFoundError(str(self._path))

    @property
    def name(self) -> str:
        return f"yaml:{self._path}"

    @property
    def path(self) -> Path:
        return self._path

    async def __call__(self) -> ConfigTree:
        content = await asyncio.to_thread(self._read)
        tree = _parse_document(content, source=str(self._path), fmt="yaml")
        logger.debug(f"[file_loader] Loaded {len(tree)} section(s) from {self._path}")
        return tree

    def _read(self) -> str:
        if not self._path.is_file():
            reason = "is a directory" if self._path.is_dir() else "deleted or not a file"
            raise SourceUnavailableError(str(self._path), reason)
        try:
            return self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise SourceUnavailableError(str(self._path), f"unreadable: {e}") from e


class HttpLoader:
    """
    Loads a configuration tree from an HTTP endpoint.

    The document format follows the response content type (JSON or YAML),
    falling back to the URL suffix, then JSON.

    Usage:
        loader = HttpLoader("https://config.internal/app.json")
        tree = await loader()

        # Shared client (connection pooling, auth, tests)
        async with httpx.AsyncClient() as client:
            loader = HttpLoader(url, client=client)
    """

    def __init__(
        self,
        url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        headers: Mapping[str, str] | None = None,
    ):
        """
        Initialize loader.

        Args:
            url: Document URL
            client: Optional shared client (not closed by the loader)
            timeout: Request timeout in seconds when no client is given
            headers: Extra request headers
        """
        self._url = url
        self._client = client
        self._timeout = timeout
        self._headers = dict(headers or {})

    @property
    def name(self) -> str:
        return f"http:{self._url}"

    async def __call__(self) -> ConfigTree:
        try:
            if self._client is not None:
                response = await self._client.get(self._url, headers=self._headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._url, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SourceUnavailableError(
                self._url, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SourceUnavailableError(self._url, f"{type(e).__name__}: {e}") from e

        fmt = self._detect_format(response)
        tree = _parse_document(response.text, source=self._url, fmt=fmt)
        logger.debug(f"[http_loader] Loaded {len(tree)} section(s) from {self._url}")
        return tree

    def _detect_format(self, response: httpx.Response) -> str:
        content_type = response.headers.get("content-type", "").lower()
        if "yaml" in content_type:
            return "yaml"
        if "json" in content_type:
            return "json"
        if self._url.split("?", 1)[0].endswith((".yaml", ".yml")):
            return "yaml"
        return "json"


class StaticLoader:
    """Returns a copy of a fixed tree on every call."""

    def __init__(self, tree: Mapping[str, Any], *, name: str = "static"):
        self._tree = copy.deepcopy(dict(tree))
        self.name = name

    async def __call__(self) -> ConfigTree:
        return copy.deepcopy(self._tree)


def _parse_document(content: str, *, source: str, fmt: str) -> ConfigTree:
    try:
        data = yaml.safe_load(content) if fmt == "yaml" else json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise SourceUnavailableError(source, f"invalid {fmt}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SourceUnavailableError(
            source, f"expected a mapping at top level, got {type(data).__name__}"
        )
    return data


# =============================================================================
# Factories
# =============================================================================


def yaml_loader(*path_parts: str | Path) -> YamlFileLoader:
    """
    Create a loader for a YAML file.

    Example:
        engine.loader(yaml_loader("config", "app.yaml"))

    Raises:
        SourceNotFoundError: If the joined path does not exist
    """
    if not path_parts:
        raise ValueError("yaml_loader requires at least one path component")
    return YamlFileLoader(Path(*path_parts))


def http_loader(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = 10.0,
    headers: Mapping[str, str] | None = None,
) -> HttpLoader:
    """Create a loader for a JSON or YAML document served over HTTP."""
    return HttpLoader(url, client=client, timeout=timeout, headers=headers)


def static_loader(tree: Mapping[str, Any], *, name: str = "static") -> StaticLoader:
    """Create a loader returning a fixed tree."""
    return StaticLoader(tree, name=name)
