import os
from dataclasses import dataclass, field
from typing import Dict, List, Tuple


# =============================================================================
# MODEL CONFIGURATION - All calibration constants with documentation
# =============================================================================

@dataclass
class FDRConfig:
    """
    Fixture Difficulty Rating configuration.
    FDR 1-5 scale where 5 = hardest fixture.

    Both attack and defence FDR fold two xG figures into one "combined"
    score and then walk the same descending threshold ladder. The ladder
    is fixed - it is NOT recomputed from the season's distribution.
    """

    # (minimum combined score, tier) - checked top to bottom
    tier_thresholds: List[Tuple[float, int]] = field(default_factory=lambda: [
        (2.0, 5),   # Very Hard
        (1.5, 4),   # Hard
        (1.0, 3),   # Medium
        (0.5, 2),   # Easy
    ])
    floor_tier: int = 1  # Very Easy - anything below the last threshold

    # xG values are inverted around this pivot so that "concedes little"
    # reads as "hard to score against"
    combine_pivot: float = 2.0

    # Home advantage: team's own figure moves by 0.2, opponent's by 0.1.
    # Away fixtures use the exact negation.
    team_home_adjustment: float = 0.2
    opponent_home_adjustment: float = 0.1

    # Unknown team / unresolvable opponent
    default_tier: int = 3


@dataclass
class SimpleFDRConfig:
    """
    Whole-season, single-team FDR used by the season table.

    Attack FDR reads the opponent's xGConceded (leaky = easy).
    Defence FDR reads the opponent's xGFor (blunt = easy).
    """

    # xGConceded lower bounds, strictly greater except the top rung
    attack_very_easy_min_xga: float = 2.0   # >= 2.0 (includes promoted placeholder)
    attack_easy_min_xga: float = 1.5        # > 1.5
    attack_medium_min_xga: float = 1.2      # > 1.2
    attack_hard_min_xga: float = 1.0        # > 1.0

    # xGFor upper bounds, strictly lower
    defence_very_easy_max_xg: float = 1.0
    defence_easy_max_xg: float = 1.2
    defence_medium_max_xg: float = 1.5
    defence_hard_max_xg: float = 1.8

    # Used when a team has no statistics at all (single team lookup)
    fallback_xg_for: float = 1.3
    fallback_xg_conceded: float = 1.3


@dataclass
class PromotedTeamConfig:
    """
    Promoted teams have no top-flight history, so the data preparation
    stage overwrites their figures with a bottom-tier placeholder.
    """
    placeholder_xg_for: float = 0.0
    placeholder_xg_conceded: float = 2.0


@dataclass
class ScheduleConfig:
    """Horizon / gameweek bounds enforced by the HTTP layer (never by the core)."""
    allowed_horizons: Tuple[int, ...] = (3, 5, 8, 10)
    default_horizon: int = 5
    default_start_gameweek: int = 1
    season_length: int = 38  # last gameweek of a 34-38 match season
    # Percentile cut points for derived tier mappings
    tier_percentiles: Tuple[int, ...] = (20, 40, 60, 80)


@dataclass
class DataConfig:
    """File and upstream locations. Environment variables win over defaults."""
    data_dir: str = field(default_factory=lambda: os.environ.get(
        "EEF_DATA_DIR", os.path.join(os.getcwd(), "data", "internal")
    ))
    team_stats_file: str = field(default_factory=lambda: os.environ.get(
        "EEF_TEAM_STATS_FILE", "team-stats.json"
    ))
    base_url: str = field(default_factory=lambda: os.environ.get(
        "EEF_BASE_URL", "https://fantasy.espngoal.nl/api"
    ))
    cache_duration: int = 300  # seconds before in-memory entity lists are reloaded
    request_timeout: float = 10.0
    max_retries: int = 3
    api_version: str = "1.0.0"
    entity_files: Dict[str, str] = field(default_factory=lambda: {
        "teams": "teams.json",
        "fixtures": "fixtures.json",
        "events": "events.json",
        "players": "players.json",
    })


# Initialize global config
MODEL_CONFIG = {
    "fdr": FDRConfig(),
    "simple_fdr": SimpleFDRConfig(),
    "promoted": PromotedTeamConfig(),
    "schedule": ScheduleConfig(),
    "data": DataConfig(),
}
