"""
EEF Assistant Backend: entry point and re-exports.

Code lives in eef_assistant/ modules:
- config.py:      MODEL_CONFIG + dataclass configs
- constants.py:   Labels, colour classes, curated team tiers, name aliases
- models.py:      Dataclasses, enums, response schemas
- cache.py:       DataCache singleton
- calculators.py: FDR ladder, per-fixture FDR, gameweek/horizon aggregation
- tiers.py:       Tier lookup, name matcher, derived tier mapping
- schedules.py:   Per-team fixture windows and opponent tier averages
- services.py:    HTTP client, upstream fetchers, internal data files
- endpoints.py:   FastAPI app + API endpoints

Tests import from `main`; star-imports re-export everything.
"""

from eef_assistant.config import *       # noqa: F401,F403
from eef_assistant.constants import *    # noqa: F401,F403
from eef_assistant.models import *       # noqa: F401,F403
from eef_assistant.cache import *        # noqa: F401,F403
from eef_assistant.calculators import *  # noqa: F401,F403
from eef_assistant.tiers import *        # noqa: F401,F403
from eef_assistant.tiers import _percentile_value  # noqa: F401  # tests use this
from eef_assistant.schedules import *    # noqa: F401,F403
from eef_assistant.services import *     # noqa: F401,F403
from eef_assistant.endpoints import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
