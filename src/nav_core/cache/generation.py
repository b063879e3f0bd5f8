# synthesized classifications from world-generation rules
# src/nav_core/cache/generation.py
"""
Generation rules for voxels that were never observed.

Long-distance pathing cannot wait for chunks to load, so some dimensions
have structure that is known in advance (bedrock floor and roof). A rule
answers UNKNOWN when it has no opinion.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from contracts.types import Classification


class GenerationRules:
    """Base rule set: knows nothing."""

    def classify(self, x: int, y: int, z: int) -> Classification:
        return Classification.UNKNOWN


@dataclass(frozen=True)
class BedrockBounds(GenerationRules):
    """Everything at or below floor_y and at or above roof_y is solid."""

    floor_y: int = 0
    roof_y: int = 127

    def classify(self, x: int, y: int, z: int) -> Classification:
        if y <= self.floor_y or y >= self.roof_y:
            return Classification.SOLID
        return Classification.UNKNOWN


def rules_for_dimension(
    dimension: str,
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Optional[GenerationRules]:
    """
    Pick generation rules for a dimension.

    `overrides` maps dimension id -> {"floor_y": int, "roof_y": int}, as
    found under cache.generation in nav.yaml.
    """
    if overrides and dimension in overrides:
        cfg = overrides[dimension] or {}
        return BedrockBounds(
            floor_y=int(cfg.get("floor_y", 0)),
            roof_y=int(cfg.get("roof_y", 127)),
        )
    if dimension in ("nether", "the_nether", "minecraft:the_nether"):
        return BedrockBounds(floor_y=0, roof_y=127)
    return None
