"""
EEF Assistant - Services Module

HTTP client and circuit breaker for the upstream fantasy API, normalization
of upstream payloads into the internal entity files, loading those files
into model objects, and name-based reconciliation of scraped team stats
onto fixture-calendar team ids.
"""

import asyncio
import json
import os
import random
import logging
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Iterable

import httpx
from fastapi import HTTPException

from eef_assistant.config import MODEL_CONFIG
from eef_assistant.constants import POSITION_MAP, TEAM_NAME_ALIASES, get_current_season
from eef_assistant.models import TeamStat, Fixture, TeamRef
from eef_assistant.cache import cache
from eef_assistant.tiers import match_team_name, get_team_tier_mapping


logger = logging.getLogger("eef_assistant")


# ============ HTTP CLIENT & CIRCUIT BREAKER ============

# Global HTTP client (initialized in lifespan)
http_client: Optional[httpx.AsyncClient] = None


async def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client, creating one if needed."""
    global http_client
    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=MODEL_CONFIG["data"].request_timeout,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            headers={"User-Agent": "EEF-Assistant/1.0"}
        )
    return http_client


# Circuit breaker state for the upstream API
_circuit_breaker = {
    "consecutive_failures": 0,
    "open_until": None,  # datetime when circuit can be retried
    "threshold": 3,      # failures before opening circuit
    "cooldown": 60,      # seconds before retrying after circuit opens
}


def _retry_after_seconds(header_value: Optional[str], fallback: float) -> float:
    """Retry-After as delay-seconds. HTTP-date or junk values use the backoff delay."""
    if header_value is None:
        return fallback
    try:
        return max(0.0, float(header_value))
    except ValueError:
        logger.debug(f"Non-numeric Retry-After {header_value!r}, using {fallback:.1f}s backoff")
        return fallback


async def fetch_with_retry(
    url: str,
    max_retries: Optional[int] = None,
    base_delay: float = 1.0
) -> httpx.Response:
    """
    Fetch URL with exponential backoff retry logic.
    Handles rate limiting (429) and transient errors.
    Includes circuit breaker: after 3 consecutive failures, fails fast for 60s.
    """
    if max_retries is None:
        max_retries = MODEL_CONFIG["data"].max_retries
    cb = _circuit_breaker
    now = datetime.now()

    if cb["open_until"] and now < cb["open_until"]:
        remaining = (cb["open_until"] - now).seconds
        raise HTTPException(
            status_code=503,
            detail=f"Upstream API circuit breaker open, retrying in {remaining}s"
        )

    client = await get_http_client()
    last_error = None

    for attempt in range(max_retries):
        try:
            response = await client.get(url)

            if response.status_code == 429:
                retry_after = _retry_after_seconds(response.headers.get("Retry-After"), base_delay * (2 ** attempt))
                logger.warning(f"Rate limited on {url}, waiting {retry_after:.1f}s")
                await asyncio.sleep(retry_after)
                continue

            response.raise_for_status()
            cb["consecutive_failures"] = 0
            cb["open_until"] = None
            return response

        except httpx.HTTPStatusError as e:
            if e.response.status_code in (500, 502, 503, 504):
                delay = base_delay * (2 ** attempt) + random.uniform(0, 1)
                logger.warning(f"Server error {e.response.status_code} on {url}, retry in {delay:.1f}s")
                await asyncio.sleep(delay)
                last_error = e
                continue
            raise
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            delay = base_delay * (2 ** attempt) + random.uniform(0, 1)
            logger.warning(f"Connection error on {url}, retry in {delay:.1f}s: {e}")
            await asyncio.sleep(delay)
            last_error = e
            continue

    cb["consecutive_failures"] += 1
    if cb["consecutive_failures"] >= cb["threshold"]:
        cb["open_until"] = now + timedelta(seconds=cb["cooldown"])
        logger.error(f"Circuit breaker OPEN after {cb['consecutive_failures']} consecutive failures. Cooldown {cb['cooldown']}s.")

    if last_error:
        raise last_error
    raise HTTPException(status_code=503, detail="Failed after max retries")


# ============ UPSTREAM FETCHERS ============

async def fetch_bootstrap() -> Dict:
    base_url = MODEL_CONFIG["data"].base_url
    try:
        response = await fetch_with_retry(f"{base_url}/bootstrap-static/")
        return response.json()
    except httpx.HTTPError as e:
        raise HTTPException(status_code=503, detail=f"Fantasy API unavailable: {str(e)}")


async def fetch_fixtures() -> List[Dict]:
    base_url = MODEL_CONFIG["data"].base_url
    try:
        response = await fetch_with_retry(f"{base_url}/fixtures/")
        return response.json()
    except httpx.HTTPError as e:
        raise HTTPException(status_code=503, detail=f"Fantasy API unavailable: {str(e)}")


# ============ NORMALIZATION (upstream snake_case -> internal camelCase) ============

def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_teams(teams: List[Dict]) -> List[Dict]:
    return [
        {
            "id": t["id"],
            "name": t["name"],
            "shortName": t.get("short_name"),
            "code": t.get("code"),
            "position": t.get("position"),
            "played": t.get("played"),
            "win": t.get("win"),
            "draw": t.get("draw"),
            "loss": t.get("loss"),
            "points": t.get("points"),
            "strength": t.get("strength"),
        }
        for t in teams
    ]


def normalize_fixtures(fixtures: List[Dict]) -> List[Dict]:
    return [
        {
            "id": f["id"],
            "code": f.get("code"),
            "event": f.get("event"),
            "finished": bool(f.get("finished", False)),
            "kickoffTime": f.get("kickoff_time"),
            "started": f.get("started"),
            "teamH": f["team_h"],
            "teamA": f["team_a"],
            "teamHScore": f.get("team_h_score"),
            "teamAScore": f.get("team_a_score"),
        }
        for f in fixtures
    ]


def normalize_events(events: List[Dict]) -> List[Dict]:
    return [
        {
            "id": e["id"],
            "name": e.get("name"),
            "deadlineTime": e.get("deadline_time"),
            "finished": bool(e.get("finished", False)),
            "isPrevious": bool(e.get("is_previous", False)),
            "isCurrent": bool(e.get("is_current", False)),
            "isNext": bool(e.get("is_next", False)),
        }
        for e in events
    ]


def normalize_players(elements: List[Dict], teams: List[Dict]) -> List[Dict]:
    """Players with their team embedded; unknown team ids are dropped with a warning."""
    teams_by_id = {t["id"]: t for t in teams}
    players = []
    for p in elements:
        team = teams_by_id.get(p.get("team"))
        if team is None:
            logger.warning(f"Player {p.get('id')} references unknown team {p.get('team')}, skipping")
            continue
        players.append({
            "id": p["id"],
            "webName": p.get("web_name"),
            "firstName": p.get("first_name"),
            "secondName": p.get("second_name"),
            "elementType": p.get("element_type"),
            "position": POSITION_MAP.get(p.get("element_type"), "UNK"),
            "team": {"id": team["id"], "name": team["name"], "shortName": team.get("short_name")},
            "nowCost": p.get("now_cost"),
            "totalPoints": p.get("total_points"),
            "pointsPerGame": _to_float(p.get("points_per_game")),
            "form": _to_float(p.get("form")),
            "selectedByPercent": _to_float(p.get("selected_by_percent")),
            "status": p.get("status"),
            "minutes": p.get("minutes"),
            "goalsScored": p.get("goals_scored"),
            "assists": p.get("assists"),
            "cleanSheets": p.get("clean_sheets"),
        })
    return players


# ============ FILE I/O ============

def _data_path(filename: str, data_dir: Optional[str] = None) -> str:
    return os.path.join(data_dir or MODEL_CONFIG["data"].data_dir, filename)


def read_json_file(filename: str, data_dir: Optional[str] = None) -> Any:
    """Read an internal data file. Missing/corrupt files surface as 503."""
    path = _data_path(filename, data_dir)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"Data file not found: {path}")
        raise HTTPException(status_code=503, detail=f"Data file {filename} not available")
    except json.JSONDecodeError as e:
        logger.error(f"Data file {path} is not valid JSON: {e}")
        raise HTTPException(status_code=503, detail=f"Data file {filename} is corrupt")


def write_json_file(filename: str, payload: Any, data_dir: Optional[str] = None):
    path = _data_path(filename, data_dir)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


async def refresh_internal_data(data_dir: Optional[str] = None) -> Dict[str, int]:
    """Fetch upstream payloads, normalize, and rewrite the internal entity files."""
    files = MODEL_CONFIG["data"].entity_files
    bootstrap = await fetch_bootstrap()
    raw_fixtures = await fetch_fixtures()

    teams = normalize_teams(bootstrap.get("teams", []))
    fixtures = normalize_fixtures(raw_fixtures)
    events = normalize_events(bootstrap.get("events", []))
    players = normalize_players(bootstrap.get("elements", []), bootstrap.get("teams", []))

    write_json_file(files["teams"], teams, data_dir)
    write_json_file(files["fixtures"], fixtures, data_dir)
    write_json_file(files["events"], events, data_dir)
    write_json_file(files["players"], players, data_dir)
    counts = {"teams": len(teams), "fixtures": len(fixtures), "events": len(events), "players": len(players)}
    write_json_file("manifest.json", {
        "schemaVersion": MODEL_CONFIG["data"].api_version,
        "timestamp": datetime.now().isoformat(),
        "counts": counts,
    }, data_dir)
    logger.info(f"Internal data refreshed: {counts}")
    cache.invalidate()
    return counts


# ============ PARSING INTERNAL FILES ============

def parse_teams(raw: Iterable[Dict]) -> List[TeamRef]:
    return [TeamRef(id=int(t["id"]), name=t["name"], short_name=t.get("shortName")) for t in raw]


def parse_fixtures(raw: Iterable[Dict]) -> List[Fixture]:
    fixtures = []
    for f in raw:
        if f.get("teamH") == f.get("teamA"):
            logger.warning(f"Fixture {f.get('id')} has the same team home and away, skipping")
            continue
        fixtures.append(Fixture(
            id=int(f["id"]),
            gameweek=f.get("event"),
            home_team=int(f["teamH"]),
            away_team=int(f["teamA"]),
            kickoff_time=f.get("kickoffTime"),
            finished=bool(f.get("finished", False)),
            home_score=f.get("teamHScore"),
            away_score=f.get("teamAScore"),
        ))
    return fixtures


def parse_team_stats(payload: Dict) -> List[TeamStat]:
    """
    Team statistics file -> TeamStat list.

    Promoted teams get the 0 / 2.0 placeholder here, at the data preparation
    stage. Negative figures are clamped to 0.
    """
    promoted_cfg = MODEL_CONFIG["promoted"]
    stats = []
    for name, row in (payload.get("teams") or {}).items():
        promoted = bool(row.get("promoted", False))
        if promoted:
            xg_for = promoted_cfg.placeholder_xg_for
            xg_conceded = promoted_cfg.placeholder_xg_conceded
        else:
            xg_for = max(0.0, _to_float(row.get("xGFor")))
            xg_conceded = max(0.0, _to_float(row.get("xGConceded")))
        stats.append(TeamStat(
            id=row.get("id", name),
            name=row.get("name", name),
            xg_for=xg_for,
            xg_conceded=xg_conceded,
            promoted=promoted,
            rank=row.get("rank"),
            matches_played=row.get("matchesPlayed"),
        ))
    return stats


def reconcile_team_stats(team_stats: Iterable[TeamStat], teams: Iterable[TeamRef]) -> Dict[int, TeamStat]:
    """
    Re-key stats by fixture-calendar team id.

    The stats site and the fantasy API number teams independently, so the
    join is on name: alias table first, then match_team_name. Registry
    teams with no match are left out (and so skipped by the FDR engine).
    """
    stats_by_name = {s.name: s for s in team_stats}
    reconciled: Dict[int, TeamStat] = {}

    for team in teams:
        alias = TEAM_NAME_ALIASES.get(team.name)
        matched = alias if alias in stats_by_name else match_team_name(team.name, stats_by_name.keys())
        if matched is None:
            logger.warning(f"No team stats found for {team.name} (id {team.id})")
            continue
        reconciled[team.id] = stats_by_name[matched]

    return reconciled


def get_current_gameweek(events: List[Dict]) -> int:
    """Next gameweek if flagged, else the current one, else the first listed."""
    for event in events:
        if event.get("isNext"):
            return event["id"]
    for event in events:
        if event.get("isCurrent"):
            return event["id"]
    if events:
        return events[0]["id"]
    return MODEL_CONFIG["schedule"].default_start_gameweek


# ============ CACHED LOADERS ============

def ensure_data_loaded(force: bool = False):
    """Populate the cache from the internal files when empty or stale."""
    if not force and not cache.is_stale() and cache.teams is not None:
        return
    files = MODEL_CONFIG["data"].entity_files
    cache.teams = parse_teams(read_json_file(files["teams"]))
    cache.fixtures = parse_fixtures(read_json_file(files["fixtures"]))
    cache.events = read_json_file(files["events"])
    cache.last_update = datetime.now()
    if cache.tier_mapping is None:
        cache.tier_mapping = get_team_tier_mapping()
    logger.info(f"Loaded {len(cache.teams)} teams, {len(cache.fixtures)} fixtures, {len(cache.events)} events")


def load_teams() -> List[TeamRef]:
    ensure_data_loaded()
    return cache.teams


def load_fixtures() -> List[Fixture]:
    ensure_data_loaded()
    return cache.fixtures


def load_events() -> List[Dict]:
    ensure_data_loaded()
    return cache.events


def load_players() -> List[Dict]:
    if cache.players_is_stale():
        cache.players = read_json_file(MODEL_CONFIG["data"].entity_files["players"])
        cache.players_last_update = datetime.now()
    return cache.players


def load_team_stats() -> List[TeamStat]:
    if cache.team_stats_is_stale():
        payload = read_json_file(MODEL_CONFIG["data"].team_stats_file)
        cache.team_stats = parse_team_stats(payload)
        cache.team_stats_last_update = datetime.now()
        cache.team_stats_meta = {
            "season": payload.get("season") or get_current_season(),
            "dataSource": payload.get("dataSource"),
        }
        logger.info(f"Loaded stats for {len(cache.team_stats)} teams ({cache.team_stats_meta.get('dataSource')})")
    return cache.team_stats
