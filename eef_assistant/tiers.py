"""
EEF Assistant - Team Tier Mapping

Curated 1-5 attack/defence tiers per team display name, the loose name
matcher used wherever two data sources disagree on spelling, and a
percentile-based generator that derives a mapping from live stats.
"""

import logging
from typing import Optional, Iterable, List, Dict, Mapping

from eef_assistant.config import MODEL_CONFIG
from eef_assistant.constants import DEFAULT_TEAM_TIERS, DEFAULT_TIER
from eef_assistant.models import FDRType, TeamStat, TeamTierMapping

logger = logging.getLogger("eef_assistant")


def get_team_tier_mapping() -> TeamTierMapping:
    """The curated mapping. Construct once and inject it; it is immutable."""
    return TeamTierMapping.from_dict(DEFAULT_TEAM_TIERS)


def match_team_name(team_name: str, candidates: Iterable[str]) -> Optional[str]:
    """
    Find the candidate that names the same team as `team_name`.

    Order is part of the contract:
    1. case-insensitive exact match
    2. case-insensitive substring, either direction ("Utrecht" <-> "FC Utrecht")
    3. None

    First hit in candidate order wins at each step.
    """
    if not team_name:
        return None
    needle = team_name.lower()
    candidates = list(candidates)

    for candidate in candidates:
        if candidate.lower() == needle:
            return candidate

    for candidate in candidates:
        lowered = candidate.lower()
        if lowered and (needle in lowered or lowered in needle):
            return candidate

    return None


def lookup_tier(team_name: Optional[str], fdr_type, mapping: Optional[TeamTierMapping] = None) -> int:
    """
    Tier 1-5 for a team name. Unknown / unmatched names are tier 3 (Medium).

    Exact matches across every bucket are tried before any substring match,
    so "AZ" never falls into a bucket holding a longer name containing "az".
    """
    if mapping is None:
        mapping = get_team_tier_mapping()
    if not team_name:
        return DEFAULT_TIER

    buckets = mapping.buckets(FDRType(fdr_type))
    name_to_tier: Dict[str, int] = {}
    for tier, names in buckets:
        for name in names:
            name_to_tier.setdefault(name, tier)

    matched = match_team_name(team_name, name_to_tier.keys())
    if matched is None:
        return DEFAULT_TIER
    return name_to_tier[matched]


# =============================================================================
# DERIVED MAPPING
# =============================================================================

def _percentile_value(sorted_values: List[float], percentile: int) -> float:
    """Floor-indexed percentile: sorted_values[floor(p/100 * (n-1))]."""
    index = int((percentile / 100) * (len(sorted_values) - 1))
    return sorted_values[index]


def derive_tier_mapping(
    team_stats: Iterable[TeamStat],
    display_names: Optional[Mapping[str, str]] = None,
) -> TeamTierMapping:
    """
    Bucket teams into tiers from their season figures.

    attack:  xGConceded ascending - the stingiest 20% are tier 5
    defence: xGFor descending    - the most prolific 20% are tier 5
    Promoted teams skip the percentile pass and land in tier 1 for both.

    `display_names` optionally renames stats-site names to registry names.
    """
    display_names = display_names or {}
    percentiles = MODEL_CONFIG["schedule"].tier_percentiles

    stats = list(team_stats)
    established = [s for s in stats if not s.promoted]
    promoted = [s for s in stats if s.promoted]

    attack: Dict[int, List[str]] = {tier: [] for tier in range(5, 0, -1)}
    defence: Dict[int, List[str]] = {tier: [] for tier in range(5, 0, -1)}

    if established:
        xga_sorted = sorted(s.xg_conceded for s in established)
        xg_sorted = sorted((s.xg_for for s in established), reverse=True)
        xga_cuts = [_percentile_value(xga_sorted, p) for p in percentiles]
        xg_cuts = [_percentile_value(xg_sorted, p) for p in percentiles]

        for stat in established:
            name = display_names.get(stat.name, stat.name)
            attack[_tier_from_cuts(stat.xg_conceded, xga_cuts, lower_is_harder=True)].append(name)
            defence[_tier_from_cuts(stat.xg_for, xg_cuts, lower_is_harder=False)].append(name)

    for stat in promoted:
        name = display_names.get(stat.name, stat.name)
        attack[1].append(name)
        defence[1].append(name)

    logger.info(f"Derived tier mapping for {len(stats)} teams ({len(promoted)} promoted)")
    return TeamTierMapping.from_dict({"attack": attack, "defence": defence})


def _tier_from_cuts(value: float, cuts: List[float], lower_is_harder: bool) -> int:
    tier = 5
    for cut in cuts:
        inside = value <= cut if lower_is_harder else value >= cut
        if inside:
            return tier
        tier -= 1
    return tier
