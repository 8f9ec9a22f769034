"""
EEF Assistant - Endpoints Module

FastAPI app initialization, CORS middleware, lifespan handler,
and the API endpoint handlers.
"""

import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Any

import httpx
from fastapi import FastAPI, HTTPException, Query

from fastapi.middleware.cors import CORSMiddleware

from eef_assistant.config import MODEL_CONFIG
from eef_assistant.constants import (
    API_VERSION, ALLOWED_HORIZONS, SEASON_LENGTH, TEAM_NAME_ALIASES,
)
from eef_assistant.models import (
    FDRType, TierSource, TeamTierMapping, TeamFDRRow, HorizonFDRRow, TeamScheduleOut,
)
from eef_assistant.cache import cache
from eef_assistant.calculators import (
    calculate_gameweek_fdr, calculate_horizon_fdr, calculate_simple_fdr,
    build_season_fdr_table, rank_horizon_results,
    get_fdr_label,
)
from eef_assistant.tiers import derive_tier_mapping, get_team_tier_mapping
from eef_assistant.schedules import build_schedules, schedule_to_dict
from eef_assistant.services import (
    ensure_data_loaded, load_teams, load_fixtures, load_events,
    load_players, load_team_stats,
    reconcile_team_stats, refresh_internal_data, get_current_gameweek,
)
import eef_assistant.services as services_module


logger = logging.getLogger("eef_assistant")


# ============ HELPER FUNCTIONS (endpoint-specific) ============

def envelope(data: Any, **extra) -> dict:
    """Standard success response shape for the dashboard."""
    return {
        "success": True,
        "data": data,
        "timestamp": datetime.now().isoformat(),
        "version": API_VERSION,
        **extra,
    }


def validate_window(horizon: int, start_gameweek: int):
    """
    Horizon/start gameweek checks live HERE, not in the calculators.
    Horizon must be one of the offered windows and must end by the last GW.
    """
    if horizon not in ALLOWED_HORIZONS:
        raise HTTPException(
            status_code=400,
            detail=f"Horizon must be one of {list(ALLOWED_HORIZONS)}, got {horizon}"
        )
    if start_gameweek < 1:
        raise HTTPException(status_code=400, detail="start_gameweek must be at least 1")
    if start_gameweek + horizon - 1 > SEASON_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"GW{start_gameweek} + {horizon} runs past GW{SEASON_LENGTH}"
        )


def _teams_by_id():
    return {t.id: t for t in load_teams()}


def _stats_display_names() -> dict:
    """Stats-site name -> registry name, so derived tiers use registry spelling."""
    return {stats_name: registry_name for registry_name, stats_name in TEAM_NAME_ALIASES.items()}


def resolve_tier_mapping(source: TierSource) -> TeamTierMapping:
    if source == TierSource.DERIVED:
        return derive_tier_mapping(load_team_stats(), display_names=_stats_display_names())
    if cache.tier_mapping is None:
        cache.tier_mapping = get_team_tier_mapping()
    return cache.tier_mapping


# ============ LIFESPAN ============

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    services_module.http_client = httpx.AsyncClient(
        timeout=MODEL_CONFIG["data"].request_timeout,
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        headers={"User-Agent": "EEF-Assistant/1.0"}
    )
    cache.tier_mapping = get_team_tier_mapping()

    try:
        ensure_data_loaded(force=True)
        logger.info("Internal data loaded on startup")
    except HTTPException as e:
        logger.error(f"Startup data load failed: {e.detail}")

    yield

    if services_module.http_client:
        await services_module.http_client.aclose()
        services_module.http_client = None


# ============ APP INITIALIZATION ============

app = FastAPI(title="EEF Assistant API", version=API_VERSION, lifespan=lifespan)

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============ ENTITY PASSTHROUGH ENDPOINTS ============

@app.get("/api/teams")
async def get_teams():
    return envelope([
        {"id": t.id, "name": t.name, "shortName": t.short_name} for t in load_teams()
    ])


@app.get("/api/teams/{team_id}")
async def get_team(team_id: int):
    team = _teams_by_id().get(team_id)
    if team is None:
        raise HTTPException(status_code=404, detail=f"Team {team_id} not found")
    return envelope({"id": team.id, "name": team.name, "shortName": team.short_name})


@app.get("/api/fixtures")
async def get_fixtures(gameweek: Optional[int] = Query(None, ge=1)):
    fixtures = load_fixtures()
    if gameweek is not None:
        fixtures = [f for f in fixtures if f.gameweek == gameweek]
    return envelope([
        {
            "id": f.id,
            "event": f.gameweek,
            "teamH": f.home_team,
            "teamA": f.away_team,
            "kickoffTime": f.kickoff_time,
            "finished": f.finished,
            "teamHScore": f.home_score,
            "teamAScore": f.away_score,
        }
        for f in fixtures
    ])


@app.get("/api/events")
async def get_events():
    events = load_events()
    return envelope(events, currentGameweek=get_current_gameweek(events))


@app.get("/api/players")
async def get_players(
    team_id: Optional[int] = None,
    position: Optional[str] = Query(None, description="GKP, DEF, MID or FWD"),
):
    players = load_players()
    if team_id is not None:
        players = [p for p in players if (p.get("team") or {}).get("id") == team_id]
    if position:
        players = [p for p in players if p.get("position") == position.upper()]
    return envelope(players)


# ============ FDR ENDPOINTS ============

@app.get("/api/fdr")
async def get_season_fdr():
    """Whole-season FDR for every team in the statistics file."""
    team_stats = load_team_stats()
    table = build_season_fdr_table(team_stats)
    return envelope(
        {
            "attack": [TeamFDRRow(**row) for row in table["attack"]],
            "defence": [TeamFDRRow(**row) for row in table["defence"]],
            "lastUpdated": datetime.now().isoformat(),
        },
        meta={**cache.team_stats_meta, "totalTeams": len(team_stats)},
    )


@app.get("/api/fdr/team/{team_id}")
async def get_team_fdr(team_id: int):
    """
    Season FDR for one registry team. Teams with no statistics fall back
    to league-average figures rather than failing.
    """
    cached = cache.get_team_fdr(team_id)
    if cached is not None:
        return envelope(cached, cached=True)

    team = _teams_by_id().get(team_id)
    if team is None:
        raise HTTPException(status_code=404, detail=f"Team {team_id} not found")

    stats = reconcile_team_stats(load_team_stats(), [team]).get(team_id)
    fallback = stats is None
    if fallback:
        simple_cfg = MODEL_CONFIG["simple_fdr"]
        xg_for, xg_conceded = simple_cfg.fallback_xg_for, simple_cfg.fallback_xg_conceded
        logger.info(f"No FDR stats for {team.name}, using average defaults")
    else:
        xg_for, xg_conceded = stats.xg_for, stats.xg_conceded

    attack_fdr = calculate_simple_fdr(xg_conceded, is_attack=True)
    defence_fdr = calculate_simple_fdr(xg_for, is_attack=False)
    data = {
        "teamId": team.id,
        "teamName": team.name,
        "attackFDR": attack_fdr,
        "defenceFDR": defence_fdr,
        "attackLabel": get_fdr_label(attack_fdr),
        "defenceLabel": get_fdr_label(defence_fdr),
        "xGFor": xg_for,
        "xGConceded": xg_conceded,
        "usedDefaultStats": fallback,
    }
    cache.set_team_fdr(team_id, data)
    return envelope(data, cached=False)


@app.delete("/api/fdr/cache")
async def clear_team_fdr_cache():
    return {"status": "ok", "cleared": cache.clear_team_fdr()}


@app.get("/api/fdr/gameweek/{gameweek}")
async def get_gameweek_fdr(gameweek: int):
    if not 1 <= gameweek <= SEASON_LENGTH:
        raise HTTPException(status_code=400, detail=f"Gameweek must be between 1 and {SEASON_LENGTH}")
    team_stats = reconcile_team_stats(load_team_stats(), load_teams())
    result = calculate_gameweek_fdr(load_fixtures(), team_stats, gameweek)
    teams_by_id = _teams_by_id()
    # calculate_gameweek_fdr keeps fixture order; rank by difficulty, ties in fixture order
    attack = sorted(result["attack"], key=lambda r: r.attack)
    defence = sorted(result["defence"], key=lambda r: r.defence)
    return envelope({
        "gameweek": gameweek,
        "attack": [HorizonFDRRow(**row) for row in rank_horizon_results(attack, teams_by_id, FDRType.ATTACK)],
        "defence": [HorizonFDRRow(**row) for row in rank_horizon_results(defence, teams_by_id, FDRType.DEFENCE)],
    })


@app.get("/api/fdr/horizon/{horizon}")
async def get_horizon_fdr(
    horizon: int,
    start_gameweek: Optional[int] = None,
):
    if start_gameweek is None:
        start_gameweek = get_current_gameweek(load_events())
    validate_window(horizon, start_gameweek)

    team_stats = reconcile_team_stats(load_team_stats(), load_teams())
    result = calculate_horizon_fdr(load_fixtures(), team_stats, horizon, start_gameweek)
    teams_by_id = _teams_by_id()
    attack = rank_horizon_results(result["attack"], teams_by_id, FDRType.ATTACK)
    defence = rank_horizon_results(result["defence"], teams_by_id, FDRType.DEFENCE)

    return envelope(
        {
            "attack": [HorizonFDRRow(**row) for row in attack],
            "defence": [HorizonFDRRow(**row) for row in defence],
            "lastUpdated": datetime.now().isoformat(),
        },
        meta={
            **cache.team_stats_meta,
            "totalTeams": len(attack),
            "horizon": horizon,
            "startGameweek": start_gameweek,
        },
    )


@app.get("/api/fdr/tiers")
async def get_fdr_tiers(source: TierSource = TierSource.CURATED):
    mapping = resolve_tier_mapping(source)
    return envelope(mapping.as_dict(), meta={"source": source.value})


# ============ SCHEDULE ENDPOINTS ============

def _schedules_response(horizon: int, start_gameweek: Optional[int], source: TierSource):
    if start_gameweek is None:
        start_gameweek = get_current_gameweek(load_events())
    validate_window(horizon, start_gameweek)

    schedules = build_schedules(
        load_fixtures(), _teams_by_id(), resolve_tier_mapping(source), horizon, start_gameweek
    )
    return envelope({
        "schedules": [TeamScheduleOut(**schedule_to_dict(s)) for s in schedules],
        "horizon": horizon,
        "startGameweek": start_gameweek,
        "totalTeams": len(schedules),
        "tierSource": source.value,
    })


@app.get("/api/schedules")
async def get_schedules(
    horizon: int = Query(MODEL_CONFIG["schedule"].default_horizon),
    start_gameweek: Optional[int] = None,
    source: TierSource = TierSource.CURATED,
):
    return _schedules_response(horizon, start_gameweek, source)


@app.get("/api/schedules/horizon/{horizon}")
async def get_schedules_for_horizon(
    horizon: int,
    start_gameweek: Optional[int] = None,
    source: TierSource = TierSource.CURATED,
):
    return _schedules_response(horizon, start_gameweek, source)



# ============ DATA MANAGEMENT ============

@app.post("/api/data/refresh")
async def refresh_data():
    """Re-fetch upstream payloads and rewrite the internal entity files."""
    counts = await refresh_internal_data()
    cache.clear_team_fdr()
    ensure_data_loaded(force=True)
    return {"status": "ok", "counts": counts}



@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "version": API_VERSION,
        "data_loaded": cache.teams is not None,
        "data_age_seconds": (
            round((datetime.now() - cache.last_update).total_seconds())
            if cache.last_update else None
        ),
        "cached_team_fdr": len(cache.team_fdr),
    }
