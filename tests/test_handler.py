"""Tests for the wire handler.

Requests are dispatched directly, or sent over a TCP endpoint where the
serve loop itself is under test.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from sds_deps.client import DepClient
from sds_deps.config import DepManagerConfig, ToolchainConfig
from sds_deps.handler import DepHandler
from sds_deps.manager import DepManager
from sds_deps.models import ClientConfig
from sds_deps.protocol import Reply, Request
from sds_deps.transport import request, start_endpoint_server


@pytest.fixture
def config(tmp_path: Path, free_port: int, fake_toolchain: ToolchainConfig) -> DepManagerConfig:
    """Handler configuration on a free TCP port."""
    return DepManagerConfig(
        src_dir=str(tmp_path / "src"),
        bin_dir=str(tmp_path / "bin"),
        log_dir=str(tmp_path / "logs"),
        handler=ClientConfig(id="dep_handler", port=free_port),
        toolchain=fake_toolchain,
    )


@pytest.fixture
def handler(config: DepManagerConfig) -> DepHandler:
    """Handler over a manager built from config."""
    return DepHandler(DepManager.from_config(config), config)


async def call(handler: DepHandler, command: str, **parameters: object) -> Reply:
    return await handler.dispatch(Request(command=command, parameters=parameters))


class TestDispatch:
    """Tests for DepHandler.dispatch()."""

    @pytest.mark.asyncio
    async def test_installed_before_and_after_install(
        self, handler: DepHandler, make_source: Callable[..., Path]
    ) -> None:
        """dep-installed flips after a successful install-dep."""
        before = await call(handler, "dep-installed", url="x/y")
        assert before.ok is True
        assert before.parameters == {"installed": False}

        make_source(handler.manager.src, "x.y")
        installed = await call(handler, "install-dep", url="x/y")
        assert installed.ok is True, installed.message

        after = await call(handler, "dep-installed", url="x/y")
        assert after.parameters == {"installed": True}

    @pytest.mark.asyncio
    async def test_installed_with_invalid_url_is_false(self, handler: DepHandler) -> None:
        reply = await call(handler, "dep-installed", url="https://example.com/org/repo")

        assert reply.ok is True
        assert reply.parameters == {"installed": False}

    @pytest.mark.asyncio
    async def test_missing_parameter_fails(self, handler: DepHandler) -> None:
        reply = await call(handler, "dep-installed")

        assert reply.ok is False
        assert "url" in reply.message

    @pytest.mark.asyncio
    async def test_mistyped_parameter_fails(self, handler: DepHandler) -> None:
        reply = await call(handler, "run-dep", url="x/y", id=5)

        assert reply.ok is False
        assert "'id'" in reply.message

    @pytest.mark.asyncio
    async def test_unknown_command_fails(self, handler: DepHandler) -> None:
        reply = await call(handler, "reboot")

        assert reply.ok is False
        assert "unknown command" in reply.message

    @pytest.mark.asyncio
    async def test_manager_errors_become_failure_replies(self, handler: DepHandler) -> None:
        """Fetching x/y would need the network; an invalid url fails before that."""
        reply = await call(handler, "install-dep", url="/abs/path")

        assert reply.ok is False
        assert "absolute url or path" in reply.message

    @pytest.mark.asyncio
    async def test_run_not_installed_fails(self, handler: DepHandler) -> None:
        reply = await call(handler, "run-dep", url="x/y", id="svc-1")

        assert reply.ok is False
        assert "not installed" in reply.message

    @pytest.mark.asyncio
    async def test_run_then_duplicate(
        self,
        handler: DepHandler,
        make_script: Callable[[str, str], Path],
    ) -> None:
        script = make_script("svc", "time.sleep(0.5)")

        first = await call(handler, "run-dep", url="x/y", id="svc-1", local_bin=str(script))
        second = await call(handler, "run-dep", url="x/y", id="svc-1", local_bin=str(script))

        assert first.ok is True, first.message
        assert second.ok is False
        assert "already running" in second.message
        done = await handler.manager.on_stop("svc-1")
        assert done is not None
        await asyncio.wait_for(done.get(), timeout=5.0)

    @pytest.mark.asyncio
    async def test_run_with_invalid_parent_fails(self, handler: DepHandler) -> None:
        reply = await call(handler, "run-dep", url="x/y", id="svc-1", parent={"port": 1})

        assert reply.ok is False
        assert "parent" in reply.message

    @pytest.mark.asyncio
    async def test_dep_running_rejects_path_escaping_id(self, handler: DepHandler) -> None:
        reply = await call(handler, "dep-running", dep={"id": "../../x"})

        assert reply.ok is False
        assert "'dep'" in reply.message

    @pytest.mark.asyncio
    async def test_uninstall(
        self, handler: DepHandler, make_source: Callable[..., Path]
    ) -> None:
        make_source(handler.manager.src, "x.y")
        assert (await call(handler, "install-dep", url="x/y")).ok

        reply = await call(handler, "uninstall-dep", url="x/y")

        assert reply.ok is True
        assert not (handler.manager.src / "x.y").exists()
        assert (await call(handler, "dep-installed", url="x/y")).parameters == {"installed": False}

    @pytest.mark.asyncio
    async def test_dep_running_and_close_dep(self, handler: DepHandler, runtime_dir: Path) -> None:
        commands: list[str] = []

        async def dependency(req: Request) -> Reply:
            commands.append(req.command)
            return req.ok()

        endpoint = ClientConfig(id="dep-1")
        server = await start_endpoint_server(endpoint, dependency)
        try:
            running = await call(handler, "dep-running", dep=endpoint.model_dump(mode="json"))
            closed = await call(handler, "close-dep", dep=endpoint.model_dump(mode="json"))
        finally:
            server.close()
            await server.wait_closed()

        assert running.parameters == {"running": True}
        assert closed.ok is True
        assert commands == ["heartbeat", "close"]

    @pytest.mark.asyncio
    async def test_close_dep_unreachable_fails(self, handler: DepHandler, free_port: int) -> None:
        reply = await call(handler, "close-dep", dep={"id": "gone", "port": free_port})

        assert reply.ok is False

    @pytest.mark.asyncio
    async def test_heartbeat_and_close(self, handler: DepHandler) -> None:
        assert (await call(handler, "heartbeat")).ok is True
        assert not handler.shutdown_event.is_set()

        assert (await call(handler, "close")).ok is True
        assert handler.shutdown_event.is_set()


class TestServe:
    """Tests for the serve loop."""

    @pytest.mark.asyncio
    async def test_serves_until_close(self, handler: DepHandler) -> None:
        task = asyncio.create_task(handler.serve())
        client = DepClient(handler.endpoint, timeout=2.0)
        try:
            for _ in range(50):
                if await client.ping():
                    break
                await asyncio.sleep(0.05)
            assert await client.installed(None) is False
            reply = await request(handler.endpoint, Request(command="dep-installed", parameters={"url": "x/y"}), 2.0)
            assert reply.parameters == {"installed": False}

            await client.close_handler()
            await asyncio.wait_for(task, timeout=5.0)
        finally:
            handler.request_shutdown()
            if not task.done():
                await task

        assert await client.ping() is False

    @pytest.mark.asyncio
    async def test_serve_stops_running_instances(
        self,
        handler: DepHandler,
        make_script: Callable[[str, str], Path],
    ) -> None:
        script = make_script("forever", "time.sleep(60)")
        task = asyncio.create_task(handler.serve())
        await asyncio.sleep(0.1)

        assert (await call(handler, "run-dep", url="x/y", id="svc-long", local_bin=str(script))).ok
        done = await handler.manager.on_stop("svc-long")
        assert done is not None

        handler.request_shutdown()
        await asyncio.wait_for(task, timeout=10.0)

        assert done.qsize() == 1
        assert await handler.manager.instances() == []
