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

import logging
import random
from typing import Container, Optional

ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 4


def generate_room_code(taken: Container[str], rng: Optional[random.Random] = None) -> str:
    """
    Draw a code of ROOM_CODE_LENGTH characters from ROOM_CODE_ALPHABET that is not in `taken`.
    A collision throws the whole code away and draws again.
    """
    rng = rng or random.Random()
    while True:
        code = "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
        if code not in taken:
            return code
        logging.warning(f"Room code collision on {code}, regenerating")


def normalize_room_code(code: str) -> str:
    return code.strip().upper()
