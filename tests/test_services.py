"""Tests for upstream normalization, internal file loading and stats reconciliation."""
import asyncio
import json
import sys
import os
from datetime import datetime, timedelta
from unittest.mock import patch, AsyncMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx
from fastapi import HTTPException

import eef_assistant.services as services_module
from main import (
    fetch_with_retry,
    normalize_teams,
    normalize_fixtures,
    normalize_events,
    normalize_players,
    parse_fixtures,
    parse_team_stats,
    reconcile_team_stats,
    get_current_gameweek,
    read_json_file,
    refresh_internal_data,
    load_team_stats,
    load_teams,
    load_events,
    load_players,
    ensure_data_loaded,
    TeamRef,
    cache,
)

import pytest


UPSTREAM_TEAMS = [
    {"id": 1, "name": "PSV", "short_name": "PSV", "code": 7, "strength": 5},
    {"id": 2, "name": "Ajax", "short_name": "AJA", "code": 1, "strength": 4},
]


# =============================================================================
# Normalization
# =============================================================================

class TestNormalize:
    def test_teams(self):
        teams = normalize_teams(UPSTREAM_TEAMS)
        assert teams[0]["shortName"] == "PSV"
        assert teams[1]["strength"] == 4

    def test_fixtures(self, make_upstream_fixture):
        fixture = normalize_fixtures([make_upstream_fixture(team_h_score=2, team_a_score=1, finished=True)])[0]
        assert fixture["teamH"] == 1
        assert fixture["teamA"] == 2
        assert fixture["event"] == 1
        assert fixture["kickoffTime"] == "2025-08-09T18:45:00Z"
        assert fixture["teamHScore"] == 2
        assert fixture["finished"] is True

    def test_events_flags(self):
        events = normalize_events([{"id": 3, "name": "Gameweek 3", "is_next": True}])
        assert events[0]["isNext"] is True
        assert events[0]["isCurrent"] is False
        assert events[0]["finished"] is False

    def test_players(self):
        elements = [
            {"id": 11, "web_name": "de Jong", "team": 1, "element_type": 4, "form": "5.5"},
            {"id": 12, "web_name": "Ghost", "team": 99, "element_type": 2},
        ]
        players = normalize_players(elements, UPSTREAM_TEAMS)

        assert len(players) == 1
        assert players[0]["position"] == "FWD"
        assert players[0]["team"] == {"id": 1, "name": "PSV", "shortName": "PSV"}
        assert players[0]["form"] == 5.5
        assert players[0]["selectedByPercent"] == 0.0


# =============================================================================
# Parsing internal files
# =============================================================================

class TestParseFixtures:
    def test_fields(self):
        fixtures = parse_fixtures([{"id": 1, "event": 4, "teamH": 1, "teamA": 2, "kickoffTime": "2025-08-30T18:45:00Z"}])
        assert fixtures[0].gameweek == 4
        assert fixtures[0].home_team == 1
        assert fixtures[0].finished is False

    def test_same_team_both_sides_skipped(self):
        assert parse_fixtures([{"id": 1, "event": 1, "teamH": 3, "teamA": 3}]) == []

    def test_unscheduled_fixture_kept(self):
        assert parse_fixtures([{"id": 1, "event": None, "teamH": 1, "teamA": 2}])[0].gameweek is None


class TestParseTeamStats:
    def test_promoted_placeholder_applied(self):
        stats = parse_team_stats({"teams": {"Volendam": {"xGFor": 1.1, "xGConceded": 1.4, "promoted": True}}})
        assert stats[0].xg_for == 0.0
        assert stats[0].xg_conceded == 2.0
        assert stats[0].promoted is True

    def test_negative_clamped(self):
        stats = parse_team_stats({"teams": {"Ajax": {"xGFor": -0.3, "xGConceded": 1.1}}})
        assert stats[0].xg_for == 0.0
        assert stats[0].xg_conceded == 1.1

    def test_name_is_key_by_default(self):
        stats = parse_team_stats({"teams": {"Ajax": {"xGFor": "1.9", "xGConceded": "1.1", "rank": 2}}})
        assert stats[0].name == "Ajax"
        assert stats[0].id == "Ajax"
        assert stats[0].xg_for == 1.9
        assert stats[0].rank == 2

    def test_empty_payload(self):
        assert parse_team_stats({}) == []


class TestReconcileTeamStats:
    def test_alias_then_matcher(self, make_team_stat):
        stats = [
            make_team_stat(id="a", name="PSV Eindhoven"),
            make_team_stat(id="b", name="Utrecht"),
            make_team_stat(id="c", name="Roda JC"),
        ]
        teams = [
            TeamRef(id=1, name="PSV"),
            TeamRef(id=4, name="FC Utrecht"),
            TeamRef(id=9, name="Roda JC Kerkrade"),
        ]
        reconciled = reconcile_team_stats(stats, teams)
        assert reconciled[1].name == "PSV Eindhoven"
        assert reconciled[4].name == "Utrecht"
        assert reconciled[9].name == "Roda JC"

    def test_unmatched_left_out(self, make_team_stat):
        reconciled = reconcile_team_stats([make_team_stat(name="Ajax")], [TeamRef(id=5, name="Brand New FC")])
        assert reconciled == {}

    def test_keys_are_calendar_ids(self, make_team_stat):
        reconciled = reconcile_team_stats([make_team_stat(id="ajax", name="Ajax")], [TeamRef(id=2, name="Ajax")])
        assert list(reconciled) == [2]


class TestGetCurrentGameweek:
    def test_next_preferred(self):
        events = [{"id": 1, "isCurrent": True}, {"id": 2, "isNext": True}]
        assert get_current_gameweek(events) == 2

    def test_current_when_no_next(self):
        events = [{"id": 1}, {"id": 7, "isCurrent": True}]
        assert get_current_gameweek(events) == 7

    def test_first_event_fallback(self):
        assert get_current_gameweek([{"id": 3}, {"id": 4}]) == 3

    def test_no_events(self):
        assert get_current_gameweek([]) == 1


# =============================================================================
# File I/O and cached loaders
# =============================================================================

class TestReadJsonFile:
    def test_missing_file_is_503(self, tmp_path):
        with pytest.raises(HTTPException) as exc:
            read_json_file("nope.json", str(tmp_path))
        assert exc.value.status_code == 503

    def test_corrupt_file_is_503(self, tmp_path):
        (tmp_path / "teams.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(HTTPException) as exc:
            read_json_file("teams.json", str(tmp_path))
        assert exc.value.status_code == 503


class TestLoaders:
    def test_load_teams_from_data_dir(self, data_dir):
        teams = load_teams()
        assert [t.name for t in teams] == ["PSV", "Ajax", "FC Volendam", "FC Utrecht"]

    def test_load_team_stats_sets_meta(self, data_dir):
        stats = load_team_stats()
        assert len(stats) == 4
        assert cache.team_stats_meta == {"season": "2025-26", "dataSource": "fbref"}

    def test_fresh_cache_not_reloaded(self, data_dir):
        ensure_data_loaded()
        with patch("eef_assistant.services.read_json_file") as mock_read:
            ensure_data_loaded()
            mock_read.assert_not_called()

    def test_rewritten_stats_file_reloaded_after_window(self, data_dir):
        assert load_team_stats()[0].xg_for == 2.4

        rewritten = {"season": "2025-26", "dataSource": "fbref", "teams": {"PSV Eindhoven": {"xGFor": 2.9, "xGConceded": 0.7}}}
        (data_dir / "team-stats.json").write_text(json.dumps(rewritten), encoding="utf-8")
        an_hour_ago = datetime.now() - timedelta(hours=1)
        cache.last_update = an_hour_ago
        cache.team_stats_last_update = an_hour_ago

        # reloading teams/fixtures/events must not mark the stats as fresh
        load_events()
        stats = load_team_stats()

        assert len(stats) == 1
        assert stats[0].xg_for == 2.9

    def test_stats_kept_within_window(self, data_dir):
        load_team_stats()
        (data_dir / "team-stats.json").write_text('{"teams": {}}', encoding="utf-8")
        assert len(load_team_stats()) == 4

    def test_rewritten_players_file_reloaded_after_window(self, data_dir):
        assert len(load_players()) == 2
        (data_dir / "players.json").write_text("[]", encoding="utf-8")
        cache.players_last_update = datetime.now() - timedelta(hours=1)
        ensure_data_loaded()
        assert load_players() == []


class TestRefreshInternalData:
    def test_writes_entity_files_and_manifest(self, data_dir, make_upstream_fixture):
        bootstrap = {
            "teams": UPSTREAM_TEAMS,
            "events": [{"id": 1, "is_current": True}],
            "elements": [{"id": 11, "web_name": "de Jong", "team": 1, "element_type": 4}],
        }
        with patch("eef_assistant.services.fetch_bootstrap", new=AsyncMock(return_value=bootstrap)), \
             patch("eef_assistant.services.fetch_fixtures", new=AsyncMock(return_value=[make_upstream_fixture()])):
            counts = asyncio.run(refresh_internal_data())

        assert counts == {"teams": 2, "fixtures": 1, "events": 1, "players": 1}
        written = json.loads((data_dir / "fixtures.json").read_text(encoding="utf-8"))
        assert written[0]["teamH"] == 1
        manifest = json.loads((data_dir / "manifest.json").read_text(encoding="utf-8"))
        assert manifest["counts"] == counts
        assert cache.teams is None

    def test_upstream_failure_propagates(self, data_dir):
        failing = AsyncMock(side_effect=HTTPException(status_code=503, detail="down"))
        with patch("eef_assistant.services.fetch_bootstrap", new=failing):
            with pytest.raises(HTTPException) as exc:
                asyncio.run(refresh_internal_data())
        assert exc.value.status_code == 503


# =============================================================================
# Upstream HTTP client
# =============================================================================

@pytest.fixture
def upstream(monkeypatch):
    """
    Route the shared client through a scripted transport and reset the breaker.
    Append (status, headers) pairs to `responses`; the last one repeats.
    """
    state = {"responses": [], "calls": 0}

    def handler(request):
        index = min(state["calls"], len(state["responses"]) - 1)
        state["calls"] += 1
        status, headers = state["responses"][index]
        return httpx.Response(status, headers=headers, json={"ok": status == 200})

    monkeypatch.setattr(services_module, "http_client", httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    with patch.dict(services_module._circuit_breaker, {"consecutive_failures": 0, "open_until": None}), \
         patch("eef_assistant.services.asyncio.sleep", new=AsyncMock()) as sleep:
        state["sleep"] = sleep
        yield state


class TestFetchWithRetry:
    URL = "https://upstream.test/api/bootstrap-static/"

    def test_server_error_then_success(self, upstream):
        upstream["responses"] = [(503, {}), (200, {})]
        response = asyncio.run(fetch_with_retry(self.URL, max_retries=3))

        assert response.status_code == 200
        assert upstream["calls"] == 2
        assert upstream["sleep"].await_count == 1
        assert services_module._circuit_breaker["consecutive_failures"] == 0

    def test_client_error_not_retried(self, upstream):
        upstream["responses"] = [(404, {})]
        with pytest.raises(httpx.HTTPStatusError) as exc:
            asyncio.run(fetch_with_retry(self.URL, max_retries=3))

        assert exc.value.response.status_code == 404
        assert upstream["calls"] == 1
        upstream["sleep"].assert_not_awaited()

    def test_breaker_opens_after_three_exhausted_calls(self, upstream):
        upstream["responses"] = [(503, {})]
        for _ in range(3):
            with pytest.raises(httpx.HTTPStatusError):
                asyncio.run(fetch_with_retry(self.URL, max_retries=1))

        assert services_module._circuit_breaker["open_until"] is not None
        with pytest.raises(HTTPException) as exc:
            asyncio.run(fetch_with_retry(self.URL, max_retries=1))
        assert exc.value.status_code == 503
        assert upstream["calls"] == 3

    def test_retry_after_seconds_honoured(self, upstream):
        upstream["responses"] = [(429, {"Retry-After": "7"}), (200, {})]
        response = asyncio.run(fetch_with_retry(self.URL, max_retries=3))

        assert response.status_code == 200
        upstream["sleep"].assert_awaited_once_with(7.0)

    def test_retry_after_http_date_uses_backoff(self, upstream):
        upstream["responses"] = [(429, {"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}), (200, {})]
        response = asyncio.run(fetch_with_retry(self.URL, max_retries=3, base_delay=1.0))

        assert response.status_code == 200
        upstream["sleep"].assert_awaited_once_with(1.0)
