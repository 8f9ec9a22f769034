"""
EEF Assistant - Constants Module

Lookup tables, curated team tiers, team name aliases and small utility
functions shared by the calculators, schedules and endpoints.
"""

from datetime import datetime

from eef_assistant.config import MODEL_CONFIG


# ============ CONSTANTS ============

API_VERSION = MODEL_CONFIG["data"].api_version
POSITION_MAP = {1: "GKP", 2: "DEF", 3: "MID", 4: "FWD"}

DEFAULT_TIER = MODEL_CONFIG["fdr"].default_tier
SEASON_LENGTH = MODEL_CONFIG["schedule"].season_length
ALLOWED_HORIZONS = MODEL_CONFIG["schedule"].allowed_horizons

UNKNOWN_TEAM_NAME = "Unknown Team"

FDR_LABELS = {
    1: "Very Easy",
    2: "Easy",
    3: "Medium",
    4: "Hard",
    5: "Very Hard",
}
FDR_UNKNOWN_LABEL = "Unknown"

# Tailwind classes consumed by the dashboard
FDR_COLOR_CLASSES = {
    1: "bg-green-100 text-green-800 border-green-200",
    2: "bg-blue-100 text-blue-800 border-blue-200",
    3: "bg-yellow-100 text-yellow-800 border-yellow-200",
    4: "bg-orange-100 text-orange-800 border-orange-200",
    5: "bg-red-100 text-red-800 border-red-200",
}
FDR_UNKNOWN_COLOR_CLASS = "bg-gray-100 text-gray-800 border-gray-200"


# =============================================================================
# CURATED TEAM TIERS
# attack  = how hard it is to SCORE against this opponent
# defence = how hard it is to keep a CLEAN SHEET against this opponent
# Display names match the fantasy API team registry (teams.json).
# Regenerate from live stats with tiers.derive_tier_mapping().
# =============================================================================

DEFAULT_TEAM_TIERS = {
    "attack": {
        5: ["PSV", "Feyenoord"],
        4: ["AZ", "Ajax"],
        3: ["FC Utrecht", "FC Twente", "N.E.C.", "Sparta Rotterdam",
            "Go Ahead Eagles", "FC Groningen", "sc Heerenveen", "Fortuna Sittard"],
        2: ["PEC Zwolle", "NAC Breda", "Heracles Almelo"],
        1: ["Excelsior", "FC Volendam", "Telstar"],
    },
    "defence": {
        5: ["PSV"],
        4: ["Ajax", "Feyenoord", "AZ"],
        3: ["FC Twente", "Go Ahead Eagles", "FC Utrecht", "N.E.C."],
        2: ["sc Heerenveen", "Sparta Rotterdam", "Heracles Almelo", "Fortuna Sittard",
            "PEC Zwolle", "NAC Breda", "FC Groningen"],
        1: ["Telstar", "FC Volendam", "Excelsior"],
    },
}

# Fantasy API display name -> statistics site name.
# Only entries that the substring matcher cannot bridge on its own are needed,
# but the full table is kept so the mapping is explicit.
TEAM_NAME_ALIASES = {
    "Ajax": "Ajax",
    "PSV": "PSV Eindhoven",
    "Feyenoord": "Feyenoord",
    "AZ": "AZ Alkmaar",
    "FC Twente": "Twente",
    "FC Utrecht": "Utrecht",
    "FC Groningen": "Groningen",
    "sc Heerenveen": "Heerenveen",
    "Sparta Rotterdam": "Sparta R'dam",
    "Go Ahead Eagles": "Go Ahead Eag",
    "Fortuna Sittard": "Fortuna Sittard",
    "N.E.C.": "NEC Nijmegen",
    "Heracles Almelo": "Heracles Almelo",
    "PEC Zwolle": "Zwolle",
    "NAC Breda": "NAC Breda",
    "FC Volendam": "Volendam",
    "Excelsior": "Excelsior",
    "Telstar": "Telstar",
    "RKC Waalwijk": "RKC Waalwijk",
    "Willem II": "Willem II",
    "Almere City": "Almere City",
}


def get_current_season() -> str:
    """
    Derive the current season label, e.g. "2025-26".
    The Eredivisie runs Aug-May, so before August we are still in the
    season that started the previous year.
    """
    now = datetime.now()
    start = now.year - 1 if now.month < 8 else now.year
    return f"{start}-{str(start + 1)[-2:]}"
