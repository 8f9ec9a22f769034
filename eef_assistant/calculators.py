"""
EEF Assistant - Calculators Module

Fixture Difficulty Rating (FDR) engine: the shared threshold ladder,
per-fixture attack/defence FDR with home advantage, gameweek and horizon
aggregation, the whole-season single-team table, and display helpers.

Everything here is pure: no I/O, no cache, identical input -> identical output.
"""

import logging
import math
from collections import OrderedDict
from typing import Optional, Dict, List, Tuple, Iterable, Mapping

from eef_assistant.config import MODEL_CONFIG
from eef_assistant.constants import (
    FDR_LABELS, FDR_UNKNOWN_LABEL,
    FDR_COLOR_CLASSES, FDR_UNKNOWN_COLOR_CLASS,
    UNKNOWN_TEAM_NAME,
)
from eef_assistant.models import (
    TeamStat, Fixture, TeamRef, PlayerXG, FDRResult, FDRType,
)

__all__ = [
    # Threshold ladder
    "score_to_tier",
    "venue_adjustments",
    # Per-fixture FDR
    "calculate_attack_fdr",
    "calculate_defence_fdr",
    "resolve_team_pair",
    # Aggregation
    "calculate_gameweek_fdr",
    "calculate_horizon_fdr",
    "population_variance",
    "aggregate_player_stats",
    "nearest_tier",
    "rank_horizon_results",
    # Season table
    "calculate_simple_fdr",
    "build_season_fdr_table",
    # Display helpers
    "get_fdr_label",
    "get_fdr_color_class",
]

logger = logging.getLogger("eef_assistant")


# =============================================================================
# THRESHOLD LADDER
# =============================================================================

def score_to_tier(combined: float) -> int:
    """
    Map a combined difficulty score onto the fixed 1-5 ladder.

    >= 2.0 -> 5 (Very Hard), >= 1.5 -> 4, >= 1.0 -> 3, >= 0.5 -> 2, else 1.
    Shared by attack and defence so both are monotonic in `combined`.
    """
    fdr_config = MODEL_CONFIG["fdr"]
    for threshold, tier in fdr_config.tier_thresholds:
        if combined >= threshold:
            return tier
    return fdr_config.floor_tier


def venue_adjustments(is_home: bool) -> Tuple[float, float]:
    """
    Return (team_adjustment, opponent_adjustment) for a venue.

    Home: (+0.2, -0.1). Away is the exact negation: (-0.2, +0.1).
    How each FDR direction applies the two numbers is up to the caller.
    """
    fdr_config = MODEL_CONFIG["fdr"]
    sign = 1.0 if is_home else -1.0
    return (
        sign * fdr_config.team_home_adjustment,
        -sign * fdr_config.opponent_home_adjustment,
    )


# =============================================================================
# PER-FIXTURE FDR
# =============================================================================

def calculate_attack_fdr(team_xg_for: float, opponent_xg_conceded: float, is_home: bool) -> int:
    """
    How hard is it for the team to SCORE in this fixture (1-5, 5 = hardest).

    Home: team xGFor +0.2, opponent xGConceded -0.1 (away mirrored).
    combined = (adj_xg_for + (2.0 - adj_xg_conceded)) / 2
    """
    team_adj, opp_adj = venue_adjustments(is_home)
    pivot = MODEL_CONFIG["fdr"].combine_pivot

    adjusted_xg_for = team_xg_for + team_adj
    adjusted_xg_conceded = opponent_xg_conceded + opp_adj

    combined = (adjusted_xg_for + (pivot - adjusted_xg_conceded)) / 2
    return score_to_tier(combined)


def calculate_defence_fdr(team_xg_conceded: float, opponent_xg_for: float, is_home: bool) -> int:
    """
    How hard is it for the team to prevent the opponent scoring (1-5).

    Home: team xGConceded -0.2, opponent xGFor -0.1 (away: +0.2 / +0.1).
    combined = ((2.0 - adj_xg_conceded) + (2.0 - adj_xg_for)) / 2

    NOTE: the arithmetic is kept as-is and scored on the same ladder as
    attack. Whether the two scales are truly comparable has not been
    validated - treat defence FDR as a modelling simplification.
    """
    team_adj, opp_adj = venue_adjustments(is_home)
    pivot = MODEL_CONFIG["fdr"].combine_pivot

    # Home lowers both figures; the opponent term uses the same sign as the team term
    adjusted_xg_conceded = team_xg_conceded - team_adj
    adjusted_xg_for = opponent_xg_for + opp_adj

    combined = ((pivot - adjusted_xg_conceded) + (pivot - adjusted_xg_for)) / 2
    return score_to_tier(combined)


def resolve_team_pair(
    team_stats: Mapping[int, TeamStat],
    team_id: int,
    opponent_id: int,
) -> Optional[Tuple[TeamStat, TeamStat]]:
    """
    Look up statistics for both sides of a fixture.

    Returns None when either side is missing. This is the ONLY place the
    skip-on-missing-data policy lives; callers just filter out None.
    """
    team = team_stats.get(team_id)
    opponent = team_stats.get(opponent_id)
    if team is None or opponent is None:
        return None
    return team, opponent


def _fixture_scores(team: TeamStat, opponent: TeamStat, is_home: bool) -> Tuple[int, int]:
    """(attack_fdr, defence_fdr) for `team` in one fixture against `opponent`."""
    attack = calculate_attack_fdr(team.xg_for, opponent.xg_conceded, is_home)
    defence = calculate_defence_fdr(team.xg_conceded, opponent.xg_for, is_home)
    return attack, defence


# =============================================================================
# AGGREGATION
# =============================================================================

def population_variance(scores: List[float]) -> float:
    """Mean of squared deviations from the mean. 0.0 for an empty list."""
    if not scores:
        return 0.0
    mean = sum(scores) / len(scores)
    return sum((s - mean) ** 2 for s in scores) / len(scores)


def calculate_gameweek_fdr(
    fixtures: Iterable[Fixture],
    team_stats: Mapping[int, TeamStat],
    gameweek: int,
) -> Dict[str, List[FDRResult]]:
    """
    Single-fixture FDR for every team playing in `gameweek`.

    Both lists carry the same entries (home team then away team per fixture),
    in fixture order. Fixtures without stats for either side are skipped.
    """
    attack_list: List[FDRResult] = []
    defence_list: List[FDRResult] = []

    gameweek_fixtures = [f for f in fixtures if f.gameweek == gameweek]
    for fixture in gameweek_fixtures:
        pair = resolve_team_pair(team_stats, fixture.home_team, fixture.away_team)
        if pair is None:
            logger.debug(f"GW{gameweek}: skipping fixture {fixture.id}, missing team stats")
            continue
        home, away = pair

        home_attack, home_defence = _fixture_scores(home, away, is_home=True)
        away_attack, away_defence = _fixture_scores(away, home, is_home=False)

        for team_id, attack, defence, home_matches in (
            (fixture.home_team, home_attack, home_defence, 1),
            (fixture.away_team, away_attack, away_defence, 0),
        ):
            result = FDRResult(
                team=team_id, attack=attack, defence=defence,
                horizon=1, variance=0.0, home_matches=home_matches,
            )
            attack_list.append(result)
            defence_list.append(FDRResult(**vars(result)))

    return {"attack": attack_list, "defence": defence_list}


def calculate_horizon_fdr(
    fixtures: Iterable[Fixture],
    team_stats: Mapping[int, TeamStat],
    horizon: int,
    start_gameweek: int,
) -> Dict[str, List[FDRResult]]:
    """
    Average FDR per team over gameweeks [start_gameweek, start_gameweek + horizon).

    - Only teams present in `team_stats` are considered, in its iteration order.
    - Fixtures whose opponent has no stats are skipped; a team left with no
      scored fixtures is absent from the result (not zero).
    - attack/defence are arithmetic means; variance is the population
      variance of the attack scores; home_matches counts scored home games.
    - attack list sorted ascending by attack, defence list by defence.
      Python's sort is stable, so ties keep team_stats order.

    horizon <= 0 is a caller contract violation and yields empty lists.
    """
    if horizon <= 0:
        logger.debug(f"calculate_horizon_fdr called with horizon={horizon}, returning empty result")
        return {"attack": [], "defence": []}

    end_gameweek = start_gameweek + horizon
    window = [
        f for f in fixtures
        if f.gameweek is not None and start_gameweek <= f.gameweek < end_gameweek
    ]

    results: List[FDRResult] = []
    for team_id in team_stats:
        attack_scores: List[int] = []
        defence_scores: List[int] = []
        home_matches = 0

        for fixture in window:
            if not fixture.involves(team_id):
                continue
            is_home = fixture.home_team == team_id
            pair = resolve_team_pair(team_stats, team_id, fixture.opponent_of(team_id))
            if pair is None:
                continue
            team, opponent = pair

            attack, defence = _fixture_scores(team, opponent, is_home)
            attack_scores.append(attack)
            defence_scores.append(defence)
            if is_home:
                home_matches += 1

        if not attack_scores:
            continue

        results.append(FDRResult(
            team=team_id,
            attack=sum(attack_scores) / len(attack_scores),
            defence=sum(defence_scores) / len(defence_scores),
            horizon=horizon,
            variance=population_variance(attack_scores),
            home_matches=home_matches,
        ))

    return {
        "attack": sorted(results, key=lambda r: r.attack),
        "defence": sorted((FDRResult(**vars(r)) for r in results), key=lambda r: r.defence),
    }


def aggregate_player_stats(players: Iterable[PlayerXG]) -> Dict[int, TeamStat]:
    """
    Fold per-player xG rows into per-team figures.

    Simple arithmetic mean over the distinct players attributed to each team
    (not minutes-weighted). Teams are emitted in first-seen order.
    """
    sums: Dict[int, List[float]] = OrderedDict()
    player_ids: Dict[int, set] = {}

    for player in players:
        totals = sums.setdefault(player.team_id, [0.0, 0.0])
        totals[0] += player.xg_for
        totals[1] += player.xg_conceded
        player_ids.setdefault(player.team_id, set()).add(player.player_id)

    team_stats: Dict[int, TeamStat] = OrderedDict()
    for team_id, (xg_for_total, xg_conceded_total) in sums.items():
        count = len(player_ids[team_id])
        team_stats[team_id] = TeamStat(
            id=team_id,
            name=f"Team {team_id}",
            xg_for=xg_for_total / count,
            xg_conceded=xg_conceded_total / count,
        )
    return team_stats


def nearest_tier(score: float) -> int:
    """Round a mean FDR to the nearest tier, halves always up (2.5 -> 3, 3.5 -> 4)."""
    return math.floor(score + 0.5)


def rank_horizon_results(
    results: List[FDRResult],
    teams_by_id: Mapping[int, TeamRef],
    fdr_type: FDRType = FDRType.ATTACK,
) -> List[Dict]:
    """
    Decorate an already-sorted FDR list with team names and 1-based rank.
    Rank is list position; it is never stored on FDRResult itself.
    `fdr_type` picks the score behind label and colorClass.
    """
    score_attr = "attack" if FDRType(fdr_type) == FDRType.ATTACK else "defence"
    rows = []
    for index, result in enumerate(results):
        team = teams_by_id.get(result.team)
        tier = nearest_tier(getattr(result, score_attr))
        rows.append({
            "teamId": result.team,
            "teamName": team.name if team else UNKNOWN_TEAM_NAME,
            "attackFDR": round(result.attack, 2),
            "defenceFDR": round(result.defence, 2),
            "rank": index + 1,
            "horizon": result.horizon,
            "variance": round(result.variance, 3),
            "homeMatches": result.home_matches,
            "label": get_fdr_label(tier),
            "colorClass": get_fdr_color_class(tier),
        })
    return rows


# =============================================================================
# WHOLE-SEASON SINGLE-TEAM FDR
# =============================================================================

def calculate_simple_fdr(xg_value: float, is_attack: bool) -> int:
    """
    Rate a single opponent from one season figure.

    Attack (xg_value = opponent xGConceded): leakier defence = easier.
    Defence (xg_value = opponent xGFor): blunter attack = easier.
    """
    cfg = MODEL_CONFIG["simple_fdr"]
    if is_attack:
        if xg_value >= cfg.attack_very_easy_min_xga:
            return 1
        elif xg_value > cfg.attack_easy_min_xga:
            return 2
        elif xg_value > cfg.attack_medium_min_xga:
            return 3
        elif xg_value > cfg.attack_hard_min_xga:
            return 4
        return 5

    if xg_value < cfg.defence_very_easy_max_xg:
        return 1
    elif xg_value < cfg.defence_easy_max_xg:
        return 2
    elif xg_value < cfg.defence_medium_max_xg:
        return 3
    elif xg_value < cfg.defence_hard_max_xg:
        return 4
    return 5


def build_season_fdr_table(team_stats: Iterable[TeamStat]) -> Dict[str, List[Dict]]:
    """
    One row per team with whole-season attack/defence FDR.

    attack list: xGConceded descending (easiest to score against first)
    defence list: xGFor ascending (easiest to keep a clean sheet against first)
    """
    rows = [
        {
            "teamId": stat.id,
            "teamName": stat.name,
            "attackFDR": calculate_simple_fdr(stat.xg_conceded, is_attack=True),
            "defenceFDR": calculate_simple_fdr(stat.xg_for, is_attack=False),
            "xGFor": stat.xg_for,
            "xGConceded": stat.xg_conceded,
            "rank": 0,
        }
        for stat in team_stats
    ]

    by_attack = sorted(rows, key=lambda r: r["xGConceded"], reverse=True)
    by_defence = sorted(rows, key=lambda r: r["xGFor"])
    return {
        "attack": [{**row, "rank": i + 1} for i, row in enumerate(by_attack)],
        "defence": [{**row, "rank": i + 1} for i, row in enumerate(by_defence)],
    }


# =============================================================================
# DISPLAY HELPERS
# =============================================================================

def get_fdr_label(fdr) -> str:
    """"Very Easy".."Very Hard"; anything outside 1-5 is "Unknown"."""
    return FDR_LABELS.get(fdr, FDR_UNKNOWN_LABEL)


def get_fdr_color_class(fdr) -> str:
    return FDR_COLOR_CLASSES.get(fdr, FDR_UNKNOWN_COLOR_CLASS)
