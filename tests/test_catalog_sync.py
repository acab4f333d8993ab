"""Tests for CatalogSynchronizer publish/retract/dispatch/resume."""

from unittest.mock import MagicMock

import pytest

from forage.utils.catalog_sync import CatalogSynchronizer
from forage.utils.errors import LaunchError, NotRunningError
from forage.utils.transport import ServerSpec


@pytest.fixture
def synchronizer(registry, host):
    return CatalogSynchronizer(registry, host)


def record(name, command="npx"):
    rec = MagicMock()
    rec.name = name
    rec.to_server_spec.return_value = ServerSpec(name=name, command=command)
    return rec


class TestPublish:
    @pytest.mark.asyncio
    async def test_publish_registers_wrapped_tools(self, synchronizer, registry, host, spec):
        managed = await registry.start(spec)

        wrapped = await synchronizer.publish(managed)

        assert sorted(host.tools) == [
            "forage__server-postgres__db__query",
            "forage__server-postgres__query",
        ]
        assert host.tools["forage__server-postgres__query"]["description"] == "[via server-postgres] Run a query"
        assert host.tools["forage__server-postgres__query"]["schema"]["properties"] == {"sql": {"type": "string"}}
        assert len(wrapped) == 2
        assert host.notifications == 1

    @pytest.mark.asyncio
    async def test_publish_twice_is_noop(self, synchronizer, registry, host, spec):
        managed = await registry.start(spec)
        await synchronizer.publish(managed)

        await synchronizer.publish(managed)

        assert len(host.tools) == 2
        assert host.notifications == 1

    @pytest.mark.asyncio
    async def test_publish_without_notify(self, synchronizer, registry, host, spec):
        await synchronizer.publish(await registry.start(spec), notify=False)
        assert host.notifications == 0


class TestRetract:
    @pytest.mark.asyncio
    async def test_retract_removes_every_registration(self, synchronizer, registry, host, spec):
        await synchronizer.publish(await registry.start(spec))

        removed = await synchronizer.retract(spec.name)

        assert removed == 2
        assert sorted(host.removed) == [
            "forage__server-postgres__db__query",
            "forage__server-postgres__query",
        ]
        assert host.tools == {}
        assert host.notifications == 2
        assert not synchronizer.is_published(spec.name)

    @pytest.mark.asyncio
    async def test_retract_unknown_server_is_noop(self, synchronizer, host):
        assert await synchronizer.retract("never-registered") == 0
        assert host.removed == []
        assert host.notifications == 0


class TestDispatch:
    @pytest.mark.asyncio
    async def test_handler_forwards_to_original_tool(self, synchronizer, registry, connector, host, spec):
        await synchronizer.publish(await registry.start(spec))
        handler = host.tools["forage__server-postgres__db__query"]["handler"]

        result = await handler({"table": "users"})

        assert connector.sessions[0].calls == [("db__query", {"table": "users"})]
        assert result.content[0].text == "db__query:{'table': 'users'}"

    @pytest.mark.asyncio
    async def test_dispatch_uses_published_server_name(self, synchronizer, registry, connector, host):
        """Server names that need sanitizing still route to the right server."""
        await synchronizer.publish(await registry.start(ServerSpec(name="@scope/pg", command="npx")))

        await host.tools["forage___scope_pg__query"]["handler"]({})

        assert connector.sessions[0].calls == [("query", {})]

    @pytest.mark.asyncio
    async def test_dispatch_after_stop_raises_not_running(self, synchronizer, registry, host, spec):
        await synchronizer.publish(await registry.start(spec))
        handler = host.tools["forage__server-postgres__query"]["handler"]
        await registry.stop(spec.name)

        with pytest.raises(NotRunningError):
            await handler({})

    @pytest.mark.asyncio
    async def test_dispatch_unwraps_unknown_names(self, synchronizer, registry, connector, spec):
        await registry.start(spec)

        await synchronizer.dispatch("forage__server-postgres__query", {"sql": "x"})

        assert connector.sessions[0].calls == [("query", {"sql": "x"})]

    @pytest.mark.asyncio
    async def test_dispatch_rejects_unwrappable_name(self, synchronizer):
        with pytest.raises(NotRunningError):
            await synchronizer.dispatch("query", {})


class TestResume:
    @pytest.mark.asyncio
    async def test_resume_starts_and_publishes_each_record(self, synchronizer, registry, host):
        summary = await synchronizer.resume([record("alpha"), record("beta")])

        assert summary == {"started": ["alpha", "beta"], "failed": {}}
        assert set(registry.list()) == {"alpha", "beta"}
        assert len(host.tools) == 4
        assert host.notifications == 0

    @pytest.mark.asyncio
    async def test_resume_continues_past_failures(self, synchronizer, registry, connector, host):
        calls = []
        original = connector.__call__

        async def flaky(spec):
            calls.append(spec.name)
            if spec.name == "broken":
                raise LaunchError("Command not found: nope", spec.name)
            return await original(spec)

        registry._connector = flaky

        summary = await synchronizer.resume([record("broken"), record("works")])

        assert calls == ["broken", "works"]
        assert summary["started"] == ["works"]
        assert "Command not found" in summary["failed"]["broken"]
        assert set(registry.list()) == {"works"}
