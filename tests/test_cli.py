"""Tests for the feed engine CLI."""
import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from feed_engine.cli import cli

QUIET = {"FEED_ENGINE_LOG_LEVEL": "ERROR"}

CATALOG = [
    {"id": "v1", "type": "short", "title": "Whispers", "category": "ghosts"},
    {"id": "v2", "type": "long", "title": "The Ward", "category": "asylums"},
    {"id": "v3", "type": "short", "title": "Knocking", "category": "ghosts"},
    {"id": "v4", "type": "long", "title": "Cellar", "category": "ghosts"},
]


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args):
    return runner.invoke(cli, ["--db-path", "state/engine.db", *args], env=QUIET)


def write_catalog():
    with open("catalog.json", "w", encoding="utf-8") as f:
        json.dump(CATALOG, f)


def test_like_then_dislike_keeps_sets_exclusive(runner):
    with runner.isolated_filesystem():
        assert invoke(runner, "like", "v1").exit_code == 0
        result = invoke(runner, "dislike", "v1")

        assert result.exit_code == 0
        state = json.loads(result.output)
        assert state["likedIds"] == []
        assert state["dislikedIds"] == ["v1"]


def test_state_persists_between_invocations(runner):
    with runner.isolated_filesystem():
        invoke(runner, "save", "v2")
        invoke(runner, "progress", "v2", "0.4")

        state = json.loads(invoke(runner, "state").output)

        assert state["savedIds"] == ["v2"]
        assert state["watchHistory"] == {"v2": 0.4}


def test_progress_is_clamped_and_monotonic(runner):
    with runner.isolated_filesystem():
        invoke(runner, "progress", "v1", "1.7")
        result = invoke(runner, "progress", "v1", "0.2")

        assert result.exit_code == 0
        assert json.loads(result.output)["watchHistory"] == {"v1": 1.0}


def test_unsave_and_restore(runner):
    with runner.isolated_filesystem():
        invoke(runner, "save", "v1")
        invoke(runner, "dislike", "v2")
        invoke(runner, "unsave", "v1")
        state = json.loads(invoke(runner, "restore", "v2").output)

        assert state["savedIds"] == []
        assert state["dislikedIds"] == []
        assert state["likedIds"] == []


def test_exclude_reports_duplicates(runner):
    with runner.isolated_filesystem():
        first = invoke(runner, "exclude", "v2")
        second = invoke(runner, "exclude", "v2")

        assert first.output.strip() == "Excluded v2"
        assert second.output.strip() == "v2 was already excluded"


def test_compose_prints_feed(runner):
    with runner.isolated_filesystem():
        write_catalog()
        invoke(runner, "exclude", "v2")
        invoke(runner, "like", "v1")
        invoke(runner, "progress", "v4", "0.5")

        result = invoke(runner, "compose", "--catalog-file", "catalog.json", "--seed", "1")

        assert result.exit_code == 0
        feed = json.loads(result.output)
        assert sorted(feed["items"]) == ["v1", "v3", "v4"]
        assert feed["ranking_fallback_used"] is True
        assert feed["continue_watching"] == [{"id": "v4", "progress": 0.5}]
        assert feed["shorts"] == ["v3"]
        assert sorted(feed["affinity"]) == ["v3", "v4"]


def test_compose_is_reproducible_with_seed(runner):
    with runner.isolated_filesystem():
        write_catalog()

        first = json.loads(invoke(runner, "compose", "--catalog-file", "catalog.json", "--seed", "5").output)
        second = json.loads(invoke(runner, "compose", "--catalog-file", "catalog.json", "--seed", "5").output)

        assert first["items"] == second["items"]


def test_compose_without_catalog_source_fails(runner):
    with runner.isolated_filesystem():
        result = invoke(runner, "compose")

        assert result.exit_code == 2
        assert "--catalog-url" in result.output


@patch("feed_engine.cli.start_metrics_server")
@patch("feed_engine.cli.FeedRefresher")
def test_run_starts_refresher(mock_refresher, mock_metrics, runner):
    instance = mock_refresher.return_value
    instance.start = AsyncMock()

    with runner.isolated_filesystem():
        write_catalog()
        result = invoke(runner, "run", "--catalog-file", "catalog.json", "--interval", "30", "--no-metrics")

        assert result.exit_code == 0
        instance.start.assert_awaited_once()
        assert mock_refresher.call_args.kwargs["interval"] == 30.0
        mock_metrics.assert_not_called()


@patch("feed_engine.cli._close", new_callable=AsyncMock)
@patch("feed_engine.cli.start_metrics_server")
@patch("feed_engine.cli.FeedRefresher")
def test_run_closes_clients_when_refresher_fails(mock_refresher, mock_metrics, mock_close, runner):
    instance = mock_refresher.return_value
    instance.start = AsyncMock(side_effect=RuntimeError("loop died"))

    with runner.isolated_filesystem():
        write_catalog()
        result = invoke(runner, "run", "--catalog-file", "catalog.json")

        assert result.exit_code == 1
        mock_close.assert_awaited_once()
        mock_metrics.assert_called_once_with(8000)


def test_async_command_keeps_name_and_help():
    assert cli.commands["compose"].name == "compose"
    assert cli.commands["compose"].help.startswith("Run one composition cycle")


def test_search_matches_titles_case_insensitively(runner):
    with runner.isolated_filesystem():
        write_catalog()

        result = invoke(runner, "search", "KNOCK", "--catalog-file", "catalog.json")

        assert result.exit_code == 0
        assert json.loads(result.output) == [{"id": "v3", "title": "Knocking", "kind": "short"}]


def test_search_respects_limit(runner):
    with runner.isolated_filesystem():
        write_catalog()

        result = invoke(runner, "search", "", "--catalog-file", "catalog.json", "--limit", "2")

        assert len(json.loads(result.output)) == 2


@pytest.mark.parametrize(
    "shelf,setup,expected",
    [
        ("liked", [("like", "v1"), ("like", "gone")], ["v1"]),
        ("saved", [("save", "v4"), ("save", "v2")], ["v2", "v4"]),
        ("hidden", [("dislike", "v3")], ["v3"]),
    ],
)
def test_library_resolves_stored_ids(runner, shelf, setup, expected):
    with runner.isolated_filesystem():
        write_catalog()
        for command, content_id in setup:
            invoke(runner, command, content_id)

        result = invoke(runner, "library", shelf, "--catalog-file", "catalog.json")

        assert result.exit_code == 0
        assert sorted(entry["id"] for entry in json.loads(result.output)) == expected


def test_exclude_with_catalog_prints_remaining_feed(runner):
    with runner.isolated_filesystem():
        write_catalog()
        invoke(runner, "progress", "v2", "0.5")

        result = invoke(runner, "exclude", "v2", "--catalog-file", "catalog.json")

        assert result.exit_code == 0
        feed = json.loads(result.output)
        assert sorted(feed["items"]) == ["v1", "v3", "v4"]
        assert feed["continue_watching"] == []
        assert "v2" not in feed["longs"]
        assert invoke(runner, "exclude", "v2").output.strip() == "v2 was already excluded"


def test_restore_warns_when_item_is_not_hidden(runner):
    with runner.isolated_filesystem():
        result = invoke(runner, "restore", "v1")

        assert result.exit_code == 0
        assert "v1 is not hidden" in result.output
