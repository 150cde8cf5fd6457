"""Tests for the panel command line interface."""

import asyncio
import json
from unittest.mock import patch

import pytest

from panel import commands
from panel.db.crud.user import get_user_by_username


@pytest.fixture
def cli(portable_session_maker, fake_daemon):
    """Run the CLI against an isolated database and a fake daemon."""

    async def no_init_db():
        pass

    with (
        patch.object(commands, "get_async_session", portable_session_maker),
        patch.object(commands, "get_daemon_client", lambda: fake_daemon),
        patch.object(commands, "init_db", no_init_db),
    ):
        yield commands.main


@pytest.fixture
def fleet(portable_session_maker, factory):
    """Two nodes with three servers; returns (node ids, server uuids by name)."""

    async def seed():
        async with portable_session_maker() as session:
            owner = await factory.user(session)
            egg = await factory.egg(session)
            alpha = await factory.node(session, name="alpha")
            beta = await factory.node(session, name="beta")
            a1, a2 = await factory.allocations(session, alpha, [25565, 25566])
            (b1,) = await factory.allocations(session, beta, [25565])
            servers = [
                await factory.server(session, alpha, egg, owner, a1, name="lobby"),
                await factory.server(session, beta, egg, owner, b1, name="survival"),
                await factory.server(session, alpha, egg, owner, a2, name="creative"),
            ]
            return (alpha.id, beta.id), {s.name: (s.id, s.uuid) for s in servers}

    return asyncio.run(seed())


class TestRebuildCommand:
    def test_rebuilds_everything(self, cli, fleet, fake_daemon, capsys):
        assert cli(["rebuild"]) == 0

        assert len(fake_daemon.updated) == 3
        out = capsys.readouterr().out
        assert "Rebuilding 3 servers..." in out
        assert "[3/3]" in out
        assert "3 succeeded, 0 failed." in out

    def test_failures_are_reported_not_fatal(self, cli, fleet, fake_daemon, capsys):
        _, servers = fleet
        survival_id, survival_uuid = servers["survival"]
        fake_daemon.failing = {survival_uuid: "Could not resolve host"}

        assert cli(["rebuild"]) == 0

        captured = capsys.readouterr()
        assert (
            f"Unable to rebuild server survival (id: {survival_id}) on node beta: "
            "Could not resolve host"
        ) in captured.err
        assert "2 succeeded, 1 failed." in captured.out

    def test_node_option(self, cli, fleet, fake_daemon):
        (alpha_id, _), servers = fleet

        assert cli(["rebuild", "--node", str(alpha_id)]) == 0

        rebuilt = {uuid for _, uuid, _ in fake_daemon.updated}
        assert rebuilt == {servers["lobby"][1], servers["creative"][1]}

    def test_server_argument_wins_over_node(self, cli, fleet, fake_daemon):
        (alpha_id, _), servers = fleet
        survival_id, survival_uuid = servers["survival"]

        assert cli(["rebuild", str(survival_id), "--node", str(alpha_id)]) == 0

        assert [uuid for _, uuid, _ in fake_daemon.updated] == [survival_uuid]

    def test_no_matching_servers(self, cli, fleet, fake_daemon, capsys):
        assert cli(["rebuild", "999"]) == 0
        assert fake_daemon.updated == []
        assert "No servers matched." in capsys.readouterr().out


class TestNodeConfigCommand:
    def test_json_output(self, cli, fleet, capsys):
        (alpha_id, _), _ = fleet

        assert cli(["node-config", str(alpha_id), "--format", "json"]) == 0

        configuration = json.loads(capsys.readouterr().out)
        assert configuration["token"] == "d" * 64
        assert configuration["api"]["port"] == 8080

    def test_yaml_output(self, cli, fleet, capsys):
        (alpha_id, _), _ = fleet

        assert cli(["node-config", str(alpha_id)]) == 0
        assert capsys.readouterr().out.startswith("debug: false\n")

    def test_missing_node(self, cli, fleet):
        assert cli(["node-config", "999"]) == 1


def test_command_is_required():
    with pytest.raises(SystemExit):
        commands.main([])


class TestCreateUserCommand:
    def test_registers_owner(self, cli, portable_session_maker):
        assert cli(["create-user", "alice"]) == 0

        async def lookup():
            async with portable_session_maker() as session:
                return await get_user_by_username(session, "alice")

        assert asyncio.run(lookup()) is not None

    def test_duplicate_username(self, cli):
        assert cli(["create-user", "alice"]) == 0
        assert cli(["create-user", "alice"]) == 1
