from dataclasses import dataclass, field
from typing import Optional, List, Dict, Tuple, Union
from enum import Enum
from pydantic import BaseModel


# ============ ENUMS ============

class FDRType(str, Enum):
    ATTACK = "attack"
    DEFENCE = "defence"


class TierSource(str, Enum):
    CURATED = "curated"
    DERIVED = "derived"


# =============================================================================
# INPUT RECORDS
# =============================================================================

@dataclass
class TeamStat:
    """
    Season-to-date per-game xG for one team, as scraped from the stats site.

    `id` lives in the stats site's namespace, NOT the fixture calendar's -
    join on `name` (see services.reconcile_team_stats).
    """
    id: Union[int, str]
    name: str
    xg_for: float
    xg_conceded: float
    promoted: bool = False
    rank: Optional[int] = None
    matches_played: Optional[int] = None


@dataclass
class Fixture:
    id: int
    gameweek: Optional[int]  # "event" upstream; None until scheduled
    home_team: int
    away_team: int
    kickoff_time: Optional[str] = None  # ISO-8601
    finished: bool = False
    home_score: Optional[int] = None
    away_score: Optional[int] = None

    def involves(self, team_id: int) -> bool:
        return self.home_team == team_id or self.away_team == team_id

    def opponent_of(self, team_id: int) -> int:
        return self.away_team if self.home_team == team_id else self.home_team


@dataclass
class TeamRef:
    """Fixture calendar team registry entry."""
    id: int
    name: str
    short_name: Optional[str] = None


@dataclass
class PlayerXG:
    """Per-player xG row, folded into team figures by aggregate_player_stats."""
    player_id: int
    team_id: int
    xg_for: float
    xg_conceded: float
    xa: float = 0.0
    minutes: int = 0
    games: int = 0


# =============================================================================
# DERIVED RESULTS
# =============================================================================

@dataclass
class FDRResult:
    """
    Difficulty for one team over a horizon (horizon=1 for a single fixture).
    attack/defence are ints for a single fixture and means for a horizon.
    """
    team: int
    attack: float
    defence: float
    horizon: int
    variance: float = 0.0   # population variance of attack scores
    home_matches: int = 0


@dataclass
class ScheduleFixture:
    fixture_id: int
    event: Optional[int]
    kickoff_time: Optional[str]
    opponent_id: int
    opponent_name: str
    is_home: bool
    opponent_attack_fdr: int
    opponent_defence_fdr: int


@dataclass
class TeamSchedule:
    team_id: int
    team_name: str
    fixtures: List[ScheduleFixture] = field(default_factory=list)
    average_attack_fdr: float = 0.0   # 0 = no fixtures, not a tier
    average_defence_fdr: float = 0.0
    attack_fdr_rank: int = 0
    defence_fdr_rank: int = 0


@dataclass(frozen=True)
class TeamTierMapping:
    """
    Immutable five-bucket partition of team display names, one per FDR type.
    Built once at startup and injected into the schedule aggregator.
    """
    attack: Tuple[Tuple[int, Tuple[str, ...]], ...]
    defence: Tuple[Tuple[int, Tuple[str, ...]], ...]

    @classmethod
    def from_dict(cls, mapping: Dict[str, Dict[int, List[str]]]) -> "TeamTierMapping":
        def _freeze(buckets: Dict[int, List[str]]):
            return tuple(
                (int(tier), tuple(names))
                for tier, names in sorted(buckets.items(), key=lambda kv: int(kv[0]), reverse=True)
            )
        return cls(attack=_freeze(mapping.get("attack", {})), defence=_freeze(mapping.get("defence", {})))

    def buckets(self, fdr_type: FDRType) -> Tuple[Tuple[int, Tuple[str, ...]], ...]:
        return self.attack if FDRType(fdr_type) == FDRType.ATTACK else self.defence

    def as_dict(self) -> Dict[str, Dict[int, List[str]]]:
        return {
            "attack": {tier: list(names) for tier, names in self.attack},
            "defence": {tier: list(names) for tier, names in self.defence},
        }


# ============ RESPONSE SCHEMAS ============
# These provide contract stability between frontend and backend

class TeamFDRRow(BaseModel):
    """Schema for a team in the season FDR table."""
    teamId: Union[int, str]
    teamName: str
    attackFDR: int
    defenceFDR: int
    xGFor: float
    xGConceded: float
    rank: int


class HorizonFDRRow(BaseModel):
    """Schema for a team in a horizon FDR ranking."""
    teamId: int
    teamName: str
    attackFDR: float
    defenceFDR: float
    rank: int
    horizon: int
    variance: float
    homeMatches: int
    label: str
    colorClass: str


class ScheduleFixtureOut(BaseModel):
    fixtureId: int
    event: Optional[int] = None
    kickoffTime: Optional[str] = None
    opponentId: int
    opponentName: str
    isHome: bool
    opponentAttackFDR: int
    opponentDefenceFDR: int


class TeamScheduleOut(BaseModel):
    """Schema for a team schedule row."""
    teamId: int
    teamName: str
    fixtures: List[ScheduleFixtureOut]
    averageAttackFDR: float
    averageDefenceFDR: float
    attackFDRRank: int
    defenceFDRRank: int

    class Config:
        extra = "allow"  # Allow additional fields
