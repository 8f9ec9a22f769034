import logging
from datetime import datetime
from typing import Optional, Dict, List

from eef_assistant.config import MODEL_CONFIG
from eef_assistant.models import TeamStat, Fixture, TeamRef, TeamTierMapping

logger = logging.getLogger("eef_assistant")


class DataCache:
    """
    In-memory copy of the internal data files, reloaded when stale.

    The FDR engine itself never reads from here - endpoints load inputs
    through the cache and hand plain lists/dicts to the calculators.
    """

    def __init__(self):
        self.teams: Optional[List[TeamRef]] = None
        self.fixtures: Optional[List[Fixture]] = None
        self.events: Optional[List[Dict]] = None
        self.players: Optional[List[Dict]] = None
        self.team_stats: Optional[List[TeamStat]] = None
        self.team_stats_meta: Dict = {}
        self.last_update: Optional[datetime] = None  # teams, fixtures, events
        self.players_last_update: Optional[datetime] = None
        self.team_stats_last_update: Optional[datetime] = None
        self.cache_duration = MODEL_CONFIG["data"].cache_duration
        # Curated tier mapping, injected into the schedule aggregator
        self.tier_mapping: Optional[TeamTierMapping] = None
        # Per-team FDR cache - team_id -> {attackFDR, defenceFDR, ...}
        # No eviction: cleared only by clear_team_fdr()
        self.team_fdr: Dict[int, Dict] = {}

    def _expired(self, loaded_at: Optional[datetime]) -> bool:
        return loaded_at is None or (datetime.now() - loaded_at).total_seconds() > self.cache_duration

    def is_stale(self) -> bool:
        return self._expired(self.last_update)

    def players_is_stale(self) -> bool:
        return self.players is None or self._expired(self.players_last_update)

    def team_stats_is_stale(self) -> bool:
        return self.team_stats is None or self._expired(self.team_stats_last_update)

    def invalidate(self):
        """Force the next access to reload every data file."""
        self.teams = None
        self.fixtures = None
        self.events = None
        self.players = None
        self.team_stats = None
        self.team_stats_meta = {}
        self.last_update = None
        self.players_last_update = None
        self.team_stats_last_update = None

    def get_team_fdr(self, team_id: int) -> Optional[Dict]:
        return self.team_fdr.get(team_id)

    def set_team_fdr(self, team_id: int, values: Dict):
        self.team_fdr[team_id] = values

    def clear_team_fdr(self) -> int:
        """Drop every cached per-team FDR. Returns how many were removed."""
        count = len(self.team_fdr)
        self.team_fdr.clear()
        if count:
            logger.info(f"Cleared {count} cached team FDR entries")
        return count


cache = DataCache()
