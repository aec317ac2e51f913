from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BadgeTier:
    """One entry of the static, ordered achievement catalog."""

    id: str
    name: str
    min_days: int
    rank: int
    color: str = ""
    image_url: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "min_days": self.min_days,
            "rank": self.rank,
            "color": self.color,
            "image_url": self.image_url,
            "description": self.description,
        }
