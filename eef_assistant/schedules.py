"""
EEF Assistant - Schedule Aggregator

Builds each team's next N fixtures from a starting gameweek, tags every
opponent with its curated attack/defence tier, and ranks teams by the
average difficulty of their run.
"""

import logging
from datetime import datetime, timezone
from typing import List, Mapping, Iterable, Tuple

from eef_assistant.constants import DEFAULT_TIER, UNKNOWN_TEAM_NAME
from eef_assistant.models import (
    Fixture, TeamRef, TeamSchedule, ScheduleFixture, TeamTierMapping, FDRType,
)
from eef_assistant.tiers import lookup_tier

logger = logging.getLogger("eef_assistant")

_NO_KICKOFF = datetime.max.replace(tzinfo=timezone.utc)


def kickoff_sort_key(fixture: Fixture) -> datetime:
    """
    Parse an ISO-8601 kickoff. Naive timestamps are read as UTC and
    fixtures without a kickoff sort after every dated fixture.
    """
    if not fixture.kickoff_time:
        return _NO_KICKOFF
    try:
        parsed = datetime.fromisoformat(fixture.kickoff_time.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable kickoff time on fixture {fixture.id}: {fixture.kickoff_time!r}")
        return _NO_KICKOFF
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_fixtures_for_team(
    fixtures: Iterable[Fixture],
    team_id: int,
    horizon: int,
    start_gameweek: int,
) -> List[Fixture]:
    """
    The team's first `horizon` fixtures at or after `start_gameweek`,
    in kickoff order. This is a per-team window: postponements can make
    two teams' windows cover different gameweeks.
    """
    if horizon <= 0:
        return []
    team_fixtures = [
        f for f in fixtures
        if f.involves(team_id) and f.gameweek is not None and f.gameweek >= start_gameweek
    ]
    team_fixtures.sort(key=kickoff_sort_key)
    return team_fixtures[:horizon]


def _opponent_tiers(opponent_name, tier_mapping: TeamTierMapping) -> Tuple[int, int]:
    if not opponent_name:
        return DEFAULT_TIER, DEFAULT_TIER
    return (
        lookup_tier(opponent_name, FDRType.ATTACK, tier_mapping),
        lookup_tier(opponent_name, FDRType.DEFENCE, tier_mapping),
    )


def assign_ranks(schedules: List[TeamSchedule]) -> None:
    """
    1-based rank by ascending average (easiest run first), written back onto
    each schedule. Stable: equal averages keep their input order.
    """
    by_attack = sorted(schedules, key=lambda s: s.average_attack_fdr)
    by_defence = sorted(schedules, key=lambda s: s.average_defence_fdr)
    for index, schedule in enumerate(by_attack):
        schedule.attack_fdr_rank = index + 1
    for index, schedule in enumerate(by_defence):
        schedule.defence_fdr_rank = index + 1


def build_schedules(
    fixtures: Iterable[Fixture],
    teams_by_id: Mapping[int, TeamRef],
    tier_mapping: TeamTierMapping,
    horizon: int,
    start_gameweek: int,
) -> List[TeamSchedule]:
    """
    One TeamSchedule per registry team, in registry order.

    - Opponents missing from the registry get "Unknown Team" and tier 3 both ways.
    - Averages are means of the opponent tiers; a team with no fixtures keeps
      0.0, which callers must read as "no data" rather than a tier.
    - Ranks come from a stable ascending sort of those averages.
    """
    fixtures = list(fixtures)
    schedules: List[TeamSchedule] = []

    for team_id, team in teams_by_id.items():
        schedule = TeamSchedule(team_id=team_id, team_name=team.name)

        for fixture in next_fixtures_for_team(fixtures, team_id, horizon, start_gameweek):
            is_home = fixture.home_team == team_id
            opponent_id = fixture.opponent_of(team_id)
            opponent = teams_by_id.get(opponent_id)
            opponent_name = opponent.name if opponent else None
            attack_tier, defence_tier = _opponent_tiers(opponent_name, tier_mapping)

            schedule.fixtures.append(ScheduleFixture(
                fixture_id=fixture.id,
                event=fixture.gameweek,
                kickoff_time=fixture.kickoff_time,
                opponent_id=opponent_id,
                opponent_name=opponent_name or UNKNOWN_TEAM_NAME,
                is_home=is_home,
                opponent_attack_fdr=attack_tier,
                opponent_defence_fdr=defence_tier,
            ))

        if schedule.fixtures:
            count = len(schedule.fixtures)
            schedule.average_attack_fdr = sum(f.opponent_attack_fdr for f in schedule.fixtures) / count
            schedule.average_defence_fdr = sum(f.opponent_defence_fdr for f in schedule.fixtures) / count

        schedules.append(schedule)

    assign_ranks(schedules)
    empty = sum(1 for s in schedules if not s.fixtures)
    if empty:
        logger.debug(f"{empty} of {len(schedules)} teams have no fixtures from GW{start_gameweek}")
    return schedules


def schedule_to_dict(schedule: TeamSchedule) -> dict:
    """camelCase shape consumed by the dashboard."""
    return {
        "teamId": schedule.team_id,
        "teamName": schedule.team_name,
        "fixtures": [
            {
                "fixtureId": f.fixture_id,
                "event": f.event,
                "kickoffTime": f.kickoff_time,
                "opponentId": f.opponent_id,
                "opponentName": f.opponent_name,
                "isHome": f.is_home,
                "opponentAttackFDR": f.opponent_attack_fdr,
                "opponentDefenceFDR": f.opponent_defence_fdr,
            }
            for f in schedule.fixtures
        ],
        "averageAttackFDR": schedule.average_attack_fdr,
        "averageDefenceFDR": schedule.average_defence_fdr,
        "attackFDRRank": schedule.attack_fdr_rank,
        "defenceFDRRank": schedule.defence_fdr_rank,
    }
