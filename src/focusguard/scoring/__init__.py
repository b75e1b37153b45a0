"""Focus scoring: penalty factors and the scoring engine.

Modules:
    factors -- one capped penalty function per category
    engine  -- ScoreSnapshot and the clamp(100 - sum) score
"""

from focusguard.scoring.factors import FactorResult
from focusguard.scoring.engine import (
    Category,
    ScoreSnapshot,
    SCORED_CATEGORIES,
    ADVISORY_CATEGORIES,
    score_window,
    score_band,
    local_time,
)

__all__ = [
    "FactorResult",
    "Category",
    "ScoreSnapshot",
    "SCORED_CATEGORIES",
    "ADVISORY_CATEGORIES",
    "score_window",
    "score_band",
    "local_time",
]
