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
from typing import Optional

DEFAULT_LAYERS = 18
DEFAULT_BLOCKS_PER_LAYER = 3


class EmptyTowerError(Exception): pass


class InvalidMoveError(Exception): pass


@dataclasses.dataclass
class Block:
    id: int
    layer: int
    index_in_layer: int
    removed: bool = False
    removed_by: Optional[int] = None

    @property
    def points(self) -> int:
        return (self.layer + 1) * 10

    def to_packet(self) -> dict:
        return {
            "id": self.id,
            "layer": self.layer,
            "index": self.index_in_layer,
            "removed": self.removed,
            "removedBy": self.removed_by,
        }


class Tower:
    """
    The stack of removable blocks.

    Blocks are kept in id order, which is layer-major, index-minor. Only `removed` and
    `removed_by` ever change, and only once per block.
    """

    def __init__(self, blocks: list[Block], blocks_per_layer: int):
        self.blocks = blocks
        self.blocks_per_layer = blocks_per_layer

    @classmethod
    def build(cls, layers: int = DEFAULT_LAYERS, blocks_per_layer: int = DEFAULT_BLOCKS_PER_LAYER) -> "Tower":
        blocks = []
        for layer in range(layers):
            for index in range(blocks_per_layer):
                blocks.append(Block(id=len(blocks), layer=layer, index_in_layer=index))
        return cls(blocks, blocks_per_layer)

    @property
    def layers(self) -> int:
        return len(self.blocks) // self.blocks_per_layer

    def get(self, block_id) -> Optional[Block]:
        if not isinstance(block_id, int) or isinstance(block_id, bool):
            return None
        if 0 <= block_id < len(self.blocks):
            return self.blocks[block_id]
        return None

    def standing(self):
        return (block for block in self.blocks if not block.removed)

    def top_layer(self) -> int:
        layers = [block.layer for block in self.standing()]
        if not layers:
            raise EmptyTowerError("No blocks remain in the tower")
        return max(layers)

    def layer_occupancy(self, layer: int) -> int:
        return sum(1 for block in self.standing() if block.layer == layer)

    def removed_count(self) -> int:
        return sum(1 for block in self.blocks if block.removed)

    def check_removable(self, block_id) -> Block:
        """
        Return the block if it may be pulled right now, otherwise raise InvalidMoveError
        with the player-facing reason.
        """
        block = self.get(block_id)
        if block is None:
            raise InvalidMoveError("No such block!")
        if block.removed:
            raise InvalidMoveError("That block is already gone!")
        if block.layer == self.top_layer():
            raise InvalidMoveError("Can't remove from top layer!")
        if self.layer_occupancy(block.layer) <= 1:
            raise InvalidMoveError("Last block in this layer!")
        return block

    def can_remove(self, block_id) -> bool:
        try:
            self.check_removable(block_id)
        except (InvalidMoveError, EmptyTowerError):
            return False
        return True

    def remove(self, block_id, by_player: int) -> Block:
        block = self.check_removable(block_id)
        block.removed = True
        block.removed_by = by_player
        return block

    def to_packet(self) -> list[dict]:
        return [block.to_packet() for block in self.blocks]
