from __future__ import annotations

from bisect import bisect_right
from typing import Tuple

from sankalpa.models.badge import BadgeTier

# Static catalog, ascending by min_days; the first tier always starts at day 0.
_CATALOG: Tuple[Tuple[str, str, int, str, str], ...] = (
    ("clown", "Clown", 0, "bg-red-500", "Starting your journey"),
    ("noob", "Noob", 1, "bg-orange-500", "First step taken"),
    ("novice", "Novice", 3, "bg-yellow-500", "Building momentum"),
    ("average", "Average", 7, "bg-blue-500", "One week strong"),
    ("advanced", "Advanced", 15, "bg-purple-500", "Two weeks of dedication"),
    ("sigma", "Sigma", 30, "bg-green-500", "One month champion"),
    ("chad", "Chad", 45, "bg-indigo-500", "Elite performer"),
    ("absolute_chad", "Absolute Chad", 60, "bg-pink-500", "Two months of excellence"),
    ("giga_chad", "Giga Chad", 120, "bg-gradient-to-r from-yellow-400 to-orange-500", "Legendary status achieved"),
)

BADGE_TIERS: Tuple[BadgeTier, ...] = tuple(
    BadgeTier(
        id=badge_id,
        name=name,
        min_days=min_days,
        rank=rank,
        color=color,
        image_url=f"/{rank + 1}.png",
        description=description,
    )
    for rank, (badge_id, name, min_days, color, description) in enumerate(_CATALOG)
)

INITIAL_TIER: BadgeTier = BADGE_TIERS[0]


class BadgeResolver:
    """Pure mapping from elapsed streak days to the highest qualifying tier."""

    def __init__(self, tiers: Tuple[BadgeTier, ...] = BADGE_TIERS):
        thresholds = [tier.min_days for tier in tiers]
        if not tiers or thresholds[0] != 0:
            raise ValueError("Badge catalog must start with a tier at min_days=0")
        if any(a >= b for a, b in zip(thresholds, thresholds[1:])):
            raise ValueError("Badge catalog min_days must be strictly increasing")
        self.tiers = tiers
        self._thresholds = thresholds
        self._by_id = {tier.id: tier for tier in tiers}

    @property
    def initial(self) -> BadgeTier:
        return self.tiers[0]

    def resolve(self, elapsed_days: int) -> BadgeTier:
        days = max(0, int(elapsed_days))
        return self.tiers[bisect_right(self._thresholds, days) - 1]

    def by_id(self, badge_id: str) -> BadgeTier:
        # Unknown ids fall back to the initial tier.
        return self._by_id.get(badge_id, self.tiers[0])


default_resolver = BadgeResolver()


def resolve_badge(elapsed_days: int) -> BadgeTier:
    """Highest tier with min_days <= elapsed_days; negative input counts as 0."""
    return default_resolver.resolve(elapsed_days)


def get_badge_by_id(badge_id: str) -> BadgeTier:
    return default_resolver.by_id(badge_id)
