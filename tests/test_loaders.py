"""
Tests for the loader registry and built-in configuration sources.

Tests for:
- LoaderRegistry
- YamlFileLoader / yaml_loader
- HttpLoader / http_loader
- StaticLoader / static_loader
"""
import asyncio

import httpx
import pytest

from ghii import (
    LoaderError,
    LoaderRegistry,
    SourceNotFoundError,
    SourceUnavailableError,
    YamlFileLoader,
    http_loader,
    static_loader,
    yaml_loader,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def yaml_file(tmp_path):
    """YAML document with one section."""
    path = tmp_path / "test.yaml"
    path.write_text("foo:\n  ciao: mondo\n", encoding="utf-8")
    return path


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# LoaderRegistry Tests
# =============================================================================


class TestLoaderRegistry:
    """Tests for LoaderRegistry."""

    def test_register_keeps_order_and_names(self):
        async def from_env():
            return {}

        registry = LoaderRegistry()
        registry.register(from_env)
        registry.register(static_loader({}), name="overrides")

        assert registry.names == ["from_env", "overrides"]
        assert [entry.index for entry in registry] == [0, 1]
        assert len(registry) == 2

    def test_rejects_non_callable(self):
        with pytest.raises(TypeError):
            LoaderRegistry().register({"a": 1})

    @pytest.mark.asyncio
    async def test_empty_registry(self):
        assert await LoaderRegistry().run_all() == []

    @pytest.mark.asyncio
    async def test_outcomes_follow_registration_order(self, delayed_loader):
        registry = LoaderRegistry()
        registry.register(delayed_loader({"n": "slow"}, 0.05))
        registry.register(delayed_loader({"n": "fast"}, 0.0))

        outcomes = await registry.run_all()

        assert [o.value for o in outcomes] == [{"n": "slow"}, {"n": "fast"}]
        assert all(o.ok for o in outcomes)

    @pytest.mark.asyncio
    async def test_loaders_run_concurrently(self):
        started = []
        release = asyncio.Event()

        def blocking(name):
            async def load():
                started.append(name)
                await release.wait()
                return {name: 1}

            return load

        registry = LoaderRegistry()
        registry.register(blocking("a"))
        registry.register(blocking("b"))

        task = asyncio.create_task(registry.run_all())
        await asyncio.sleep(0.01)
        assert started == ["a", "b"]  # Both started before either finished

        release.set()
        outcomes = await task
        assert [o.value for o in outcomes] == [{"a": 1}, {"b": 1}]

    @pytest.mark.asyncio
    async def test_failures_are_attributed_and_do_not_cancel_siblings(
        self, delayed_loader, failing_loader
    ):
        slow = delayed_loader({"ok": True}, 0.02)
        registry = LoaderRegistry()
        registry.register(failing_loader("first"), name="bad-1")
        registry.register(slow, name="good")
        registry.register(failing_loader("second"), name="bad-2")

        outcomes = await registry.run_all()

        assert [o.ok for o in outcomes] == [False, True, False]
        assert outcomes[1].value == {"ok": True}

        error = outcomes[0].error
        assert isinstance(error, LoaderError)
        assert error.index == 0
        assert error.name == "bad-1"
        assert isinstance(error.cause, RuntimeError)
        assert error.__cause__ is error.cause
        assert outcomes[2].error.name == "bad-2"

    @pytest.mark.asyncio
    async def test_sync_exception_when_called_is_captured(self):
        def not_even_async():
            raise ValueError("sync failure")

        registry = LoaderRegistry()
        registry.register(not_even_async)

        (outcome,) = await registry.run_all()
        assert isinstance(outcome.error.cause, ValueError)

    @pytest.mark.asyncio
    async def test_non_mapping_result_is_an_error(self):
        async def returns_list():
            return ["a"]

        registry = LoaderRegistry()
        registry.register(returns_list)

        (outcome,) = await registry.run_all()
        assert isinstance(outcome.error.cause, TypeError)

    @pytest.mark.asyncio
    async def test_none_result_is_empty_contribution(self):
        async def returns_none():
            return None

        registry = LoaderRegistry()
        registry.register(returns_none)

        (outcome,) = await registry.run_all()
        assert outcome.ok
        assert outcome.value == {}


# =============================================================================
# YAML Loader Tests
# =============================================================================


class TestYamlLoader:
    """Tests for yaml_loader and YamlFileLoader."""

    def test_creates_a_loader(self, yaml_file):
        loader = yaml_loader(str(yaml_file.parent), yaml_file.name)
        assert isinstance(loader, YamlFileLoader)
        assert callable(loader)
        assert loader.path == yaml_file

    def test_missing_file_raises_at_creation(self, tmp_path):
        with pytest.raises(SourceNotFoundError):
            yaml_loader(str(tmp_path), "test_not_exist.yaml")

    def test_requires_a_path(self):
        with pytest.raises(ValueError):
            yaml_loader()

    @pytest.mark.asyncio
    async def test_reads_yaml_content(self, yaml_file):
        content = await yaml_loader(str(yaml_file))()
        assert content == {"foo": {"ciao": "mondo"}}

    @pytest.mark.asyncio
    async def test_directory_fails_at_load_time(self, tmp_path):
        loader = yaml_loader(str(tmp_path))
        with pytest.raises(SourceUnavailableError, match="directory"):
            await loader()

    @pytest.mark.asyncio
    async def test_file_removed_after_creation(self, yaml_file):
        loader = yaml_loader(str(yaml_file))
        yaml_file.unlink()

        with pytest.raises(SourceUnavailableError):
            await loader()

    @pytest.mark.asyncio
    async def test_empty_document_is_empty_tree(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert await yaml_loader(str(path))() == {}

    @pytest.mark.asyncio
    async def test_top_level_list_is_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(SourceUnavailableError, match="mapping"):
            await yaml_loader(str(path))()

    @pytest.mark.asyncio
    async def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("foo: [unclosed\n", encoding="utf-8")
        with pytest.raises(SourceUnavailableError, match="invalid yaml"):
            await yaml_loader(str(path))()

    def test_loader_name(self, yaml_file):
        assert yaml_loader(str(yaml_file)).name == f"yaml:{yaml_file}"


# =============================================================================
# HTTP Loader Tests
# =============================================================================


class TestHttpLoader:
    """Tests for http_loader and HttpLoader."""

    @pytest.mark.asyncio
    async def test_loads_json(self):
        def handler(request):
            assert request.headers["x-token"] == "abc"
            return httpx.Response(200, json={"server": {"port": 9000}})

        async with mock_client(handler) as client:
            loader = http_loader(
                "https://config.test/app.json", client=client, headers={"X-Token": "abc"}
            )
            assert await loader() == {"server": {"port": 9000}}

    @pytest.mark.asyncio
    async def test_loads_yaml_by_content_type(self):
        def handler(request):
            return httpx.Response(
                200,
                text="server:\n  port: 9000\n",
                headers={"content-type": "application/yaml"},
            )

        async with mock_client(handler) as client:
            loader = http_loader("https://config.test/app", client=client)
            assert await loader() == {"server": {"port": 9000}}

    @pytest.mark.asyncio
    async def test_loads_yaml_by_suffix(self):
        def handler(request):
            return httpx.Response(200, text="a: 1\n", headers={"content-type": "text/plain"})

        async with mock_client(handler) as client:
            loader = http_loader("https://config.test/app.yml?rev=2", client=client)
            assert await loader() == {"a": 1}

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        async with mock_client(handler) as client:
            loader = http_loader("https://config.test/app.json", client=client)
            with pytest.raises(SourceUnavailableError, match="HTTP 503"):
                await loader()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            loader = http_loader("https://config.test/app.json", client=client)
            with pytest.raises(SourceUnavailableError, match="ConnectError"):
                await loader()

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(
                200, text="{not json", headers={"content-type": "application/json"}
            )

        async with mock_client(handler) as client:
            loader = http_loader("https://config.test/app.json", client=client)
            with pytest.raises(SourceUnavailableError, match="invalid json"):
                await loader()

    def test_loader_name(self):
        assert http_loader("https://config.test/a.json").name == "http:https://config.test/a.json"


# =============================================================================
# Static Loader Tests
# =============================================================================


class TestStaticLoader:
    """Tests for static_loader."""

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        source = {"a": {"b": 1}}
        loader = static_loader(source)
        source["a"]["b"] = 2

        first = await loader()
        first["a"]["b"] = 3

        assert await loader() == {"a": {"b": 1}}
