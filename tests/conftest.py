"""Shared fixtures for EEF test suite."""
import json
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from main import Fixture, TeamStat, TeamRef, MODEL_CONFIG, cache


@pytest.fixture
def make_fixture():
    """Factory for Fixture records (internal shape, not upstream)."""
    def _make(**overrides):
        base = {
            "id": 1,
            "gameweek": 1,
            "home_team": 1,
            "away_team": 2,
            "kickoff_time": "2025-08-09T18:45:00Z",
            "finished": False,
        }
        base.update(overrides)
        return Fixture(**base)
    return _make


@pytest.fixture
def make_team_stat():
    """Factory for TeamStat records. Defaults sit at league average."""
    def _make(**overrides):
        base = {
            "id": 1,
            "name": "Team 1",
            "xg_for": 1.3,
            "xg_conceded": 1.3,
        }
        base.update(overrides)
        return TeamStat(**base)
    return _make


@pytest.fixture
def make_team_ref():
    def _make(**overrides):
        base = {"id": 1, "name": "PSV", "short_name": "PSV"}
        base.update(overrides)
        return TeamRef(**base)
    return _make


@pytest.fixture
def make_upstream_fixture():
    """Factory for fixture dicts matching the fantasy API shape."""
    def _make(**overrides):
        base = {
            "id": 1,
            "code": 2500001,
            "event": 1,
            "finished": False,
            "kickoff_time": "2025-08-09T18:45:00Z",
            "started": False,
            "team_h": 1,
            "team_a": 2,
            "team_h_score": None,
            "team_a_score": None,
        }
        base.update(overrides)
        return base
    return _make


# =============================================================================
# INTERNAL DATA DIRECTORY
# =============================================================================

SAMPLE_TEAMS = [
    {"id": 1, "name": "PSV", "shortName": "PSV"},
    {"id": 2, "name": "Ajax", "shortName": "AJA"},
    {"id": 3, "name": "FC Volendam", "shortName": "VOL"},
    {"id": 4, "name": "FC Utrecht", "shortName": "UTR"},
]

SAMPLE_FIXTURES = [
    {"id": 101, "event": 1, "teamH": 1, "teamA": 2, "kickoffTime": "2025-08-09T18:45:00Z", "finished": True},
    {"id": 102, "event": 1, "teamH": 3, "teamA": 4, "kickoffTime": "2025-08-10T12:15:00Z", "finished": True},
    {"id": 103, "event": 2, "teamH": 2, "teamA": 3, "kickoffTime": "2025-08-16T18:45:00Z"},
    {"id": 104, "event": 2, "teamH": 4, "teamA": 1, "kickoffTime": "2025-08-17T14:30:00Z"},
    {"id": 105, "event": 3, "teamH": 1, "teamA": 3, "kickoffTime": "2025-08-23T18:45:00Z"},
    {"id": 106, "event": 3, "teamH": 4, "teamA": 2, "kickoffTime": "2025-08-24T14:30:00Z"},
    {"id": 107, "event": 4, "teamH": 3, "teamA": 1, "kickoffTime": "2025-08-30T18:45:00Z"},
    {"id": 108, "event": 4, "teamH": 2, "teamA": 4, "kickoffTime": "2025-08-31T14:30:00Z"},
]

SAMPLE_EVENTS = [
    {"id": 1, "name": "Gameweek 1", "finished": True, "isCurrent": True, "isNext": False},
    {"id": 2, "name": "Gameweek 2", "finished": False, "isCurrent": False, "isNext": True},
    {"id": 3, "name": "Gameweek 3", "finished": False, "isCurrent": False, "isNext": False},
]

SAMPLE_PLAYERS = [
    {"id": 11, "webName": "de Jong", "position": "FWD", "team": {"id": 1, "name": "PSV", "shortName": "PSV"}},
    {"id": 12, "webName": "Pasveer", "position": "GKP", "team": {"id": 2, "name": "Ajax", "shortName": "AJA"}},
]

SAMPLE_TEAM_STATS = {
    "season": "2025-26",
    "dataSource": "fbref",
    "teams": {
        "PSV Eindhoven": {"xGFor": 2.4, "xGConceded": 0.8, "rank": 1},
        "Ajax": {"xGFor": 1.9, "xGConceded": 1.1, "rank": 2},
        "Utrecht": {"xGFor": 1.4, "xGConceded": 1.3, "rank": 6},
        "Volendam": {"xGFor": 0.9, "xGConceded": 1.9, "promoted": True},
    },
}


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    """
    Write a small internal data set to a temp dir, point the config at it,
    and start from an empty cache.
    """
    files = MODEL_CONFIG["data"].entity_files
    payloads = {
        files["teams"]: SAMPLE_TEAMS,
        files["fixtures"]: SAMPLE_FIXTURES,
        files["events"]: SAMPLE_EVENTS,
        files["players"]: SAMPLE_PLAYERS,
        MODEL_CONFIG["data"].team_stats_file: SAMPLE_TEAM_STATS,
    }
    for filename, payload in payloads.items():
        (tmp_path / filename).write_text(json.dumps(payload), encoding="utf-8")

    monkeypatch.setattr(MODEL_CONFIG["data"], "data_dir", str(tmp_path))
    cache.invalidate()
    cache.clear_team_fdr()
    cache.tier_mapping = None
    yield tmp_path
    cache.invalidate()
    cache.clear_team_fdr()
