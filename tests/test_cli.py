"""Tests for the forage command line."""

import pytest

from forage import cli
from forage.utils.manifest import InstalledToolRecord, Manifest
from forage.utils.search_aggregator import SearchResult


class StubRegistryClient:
    queries = []

    def __init__(self, timeout=10.0):
        self.timeout = timeout

    def backends(self):
        async def official(query):
            self.queries.append(("official-registry", query))
            return [SearchResult(
                name="postgres",
                package_identifier="@modelcontextprotocol/server-postgres",
                description="Read-only Postgres access",
                source="official-registry",
                url="https://github.com/modelcontextprotocol/servers",
            )]

        async def npm(query):
            self.queries.append(("npm", query))
            return [SearchResult(name="pg-mcp", package_identifier="pg-mcp", description="Postgres tools")]

        return {"official-registry": official, "npm": npm}


@pytest.fixture(autouse=True)
def forage_home(monkeypatch, tmp_path):
    monkeypatch.setenv("FORAGE_HOME", str(tmp_path))
    monkeypatch.setattr(cli, "RegistryClient", StubRegistryClient)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    StubRegistryClient.queries = []
    return tmp_path


def test_search_prints_ranked_results(capsys):
    assert cli.main(["search", "postgres", "database"]) == 0

    out = capsys.readouterr().out
    assert 'Searching for "postgres database"' in out
    assert "[official] @modelcontextprotocol/server-postgres" in out
    assert "https://github.com/modelcontextprotocol/servers" in out
    assert out.index("[official]") < out.index("[npm] pg-mcp")


def test_search_limited_to_one_source(capsys):
    assert cli.main(["search", "postgres", "--source", "npm"]) == 0

    assert StubRegistryClient.queries == [("npm", "postgres")]
    assert "[official]" not in capsys.readouterr().out


def test_search_rejects_unknown_source():
    with pytest.raises(SystemExit):
        cli.main(["search", "postgres", "--source", "pypi"])


def test_list_without_installs(capsys):
    assert cli.main(["list"]) == 0

    assert "No tools installed via Forage." in capsys.readouterr().out


def test_list_installed_tools(capsys, forage_home):
    Manifest(forage_home / "manifest.json").record_installed(InstalledToolRecord(
        name="modelcontextprotocol__server-postgres",
        package_name="@modelcontextprotocol/server-postgres",
        command="npx",
        auto_start=False,
    ))

    assert cli.main(["list"]) == 0

    out = capsys.readouterr().out
    assert "modelcontextprotocol__server-postgres" in out
    assert "Package: @modelcontextprotocol/server-postgres" in out
    assert "Auto-start: false" in out


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0

    assert "search" in capsys.readouterr().out
