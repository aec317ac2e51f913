from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional

ActivityType = Literal["mental", "physical", "creative", "game", "journal", "community"]
RewardCategory = Literal["in-app", "real-world"]


@dataclass(frozen=True)
class Activity:
    id: str
    type: ActivityType
    coins: int
    xp: int = 0


@dataclass(frozen=True)
class Reward:
    id: str
    category: RewardCategory
    cost: int
    unlock_category: Optional[str] = None


ACTIVITIES: Dict[str, Activity] = {
    activity.id: activity
    for activity in (
        Activity("breathing", "mental", 5),
        Activity("squats", "physical", 5),
        Activity("reverse_spelling", "mental", 3),
        Activity("grounding", "mental", 7),
        Activity("counting_backwards", "mental", 4),
        Activity("memory_sequence", "mental", 6),
        Activity("doodle_pad", "creative", 4),
        Activity("word_association", "creative", 5),
        Activity("bubble_pop", "game", 3),
        Activity("color_match", "game", 4),
        Activity("reaction_test", "game", 5),
        Activity("jumping_jacks", "physical", 4),
        Activity("wall_pushups", "physical", 5),
        Activity("mental_workout", "mental", 10),
        Activity("gratitude_entry", "journal", 2, xp=5),
        Activity("community_post", "community", 3),
    )
}

REWARDS: Dict[str, Reward] = {
    reward.id: reward
    for reward in (
        Reward("ocean-theme", "in-app", 500, "themes"),
        Reward("legendary-badge", "in-app", 1500, "badges"),
        Reward("cherry-blossom-tree", "in-app", 1000, "features"),
        Reward("focus-music", "in-app", 750, "music"),
        Reward("mobile-recharge-20", "real-world", 5000),
        Reward("plant-tree", "real-world", 10000),
        Reward("charity-donation", "real-world", 1000),
    )
}

# Daily check-in
CHECK_IN_XP = 10
CHECK_IN_COINS = 5
WEEKLY_CHECK_IN_BONUS = 25
WEEKLY_CHECK_IN_STRIDE = 7
