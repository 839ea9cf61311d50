"""
TowerDuel
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import dataclasses
import logging
import random
from typing import Optional

from stacking.tower import Block, Tower


@dataclasses.dataclass(frozen=True)
class CollapseSettings:
    structural_probability: float = 0.4
    free_threshold: int = 8
    hazard_slope: float = 0.04
    layer_danger_bonus: float = 0.15


class CollapseResolver:
    """
    Stand-in for a physics simulation: decides after every pull whether the tower falls.

    Two independent Bernoulli trials are drawn for every pull, a structural one (the middle
    block of a layer went and left a single block behind) and a stochastic one whose hazard
    grows with the number of blocks pulled so far. Either one succeeding means collapse.
    Both are always drawn so the outcome distribution does not depend on evaluation order.
    """

    def __init__(self, settings: Optional[CollapseSettings] = None, rng: Optional[random.Random] = None):
        self.settings = settings or CollapseSettings()
        self._rng = rng or random.Random()

    def structural_probability(self, tower: Tower, block: Block) -> float:
        middle = tower.blocks_per_layer // 2
        if block.index_in_layer == middle and tower.layer_occupancy(block.layer) == 1:
            return self.settings.structural_probability
        return 0.0

    def hazard(self, tower: Tower, block: Block, total_removed: int) -> float:
        baseline = max(0.0, (total_removed - self.settings.free_threshold) * self.settings.hazard_slope)
        layer_removed = tower.blocks_per_layer - tower.layer_occupancy(block.layer)
        if layer_removed >= 2:
            baseline += self.settings.layer_danger_bonus
        return baseline

    def resolve(self, tower: Tower, block: Block, total_removed: int) -> bool:
        structural_chance = self.structural_probability(tower, block)
        hazard_chance = self.hazard(tower, block, total_removed)

        structural = self._rng.random() < structural_chance
        stochastic = self._rng.random() < hazard_chance
        logging.debug(f"Collapse check for block {block.id}: "
                      f"{structural_chance=:.2f} {structural=} {hazard_chance=:.2f} {stochastic=}")
        return structural or stochastic
