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
from pathlib import Path

from voluptuous import Schema, Required, All, Coerce, Length, Range
import voluptuous.error
import aiofiles
import tomlkit
import tomlkit.exceptions

from stacking.collapse import CollapseSettings


class ConfigurationLoadError(Exception): pass


_probability = All(Coerce(float), Range(min=0.0, max=1.0))


class Config:
    config: dict
    config_opened: bool = False

    def __init__(self, config_location: Path):
        self.config_location = config_location

        self.config_schema = Schema({
            Required('server'): {
                Required('host', default="0.0.0.0"): All(str, Length(min=1)),
                Required('port'): All(int, Range(min=0, max=65535)),
            },
            Required('tower', default={}): {
                Required('layers', default=18): All(int, Range(min=2)),
                Required('blocks_per_layer', default=3): All(int, Range(min=2)),
            },
            Required('collapse', default={}): {
                Required('structural_probability', default=0.4): _probability,
                Required('free_threshold', default=8): All(int, Range(min=0)),
                Required('hazard_slope', default=0.04): _probability,
                Required('layer_danger_bonus', default=0.15): _probability,
                Required('announce_delay_ms', default=500): All(int, Range(min=0)),
            },
        })

    async def initialize(self):
        try:
            async with aiofiles.open(self.config_location, 'r') as config_file:
                file_data = await config_file.read()
                document = tomlkit.parse(file_data)
                logging.debug("Loaded Configuration without toml format error")
                logging.debug("Validating against Schema.")
                self.config = self.config_schema(document.unwrap())
                self.config_opened = True
                logging.debug("Validated against Schema.")
        except FileNotFoundError as e:
            logging.exception(e)
            logging.warning(
                f"Could not find {self.config_location}. Copy from .example/config.toml to {self.config_location}")
            raise ConfigurationLoadError() from e
        except IOError as e:
            logging.exception(e)
            logging.warning(f"Could not open file {self.config_location}")
            raise ConfigurationLoadError() from e
        except tomlkit.exceptions.ParseError as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} is invalid")
            raise ConfigurationLoadError() from e
        except voluptuous.error.MultipleInvalid as e:
            logging.exception(e)
            logging.warning(f"Configuration in {self.config_location} does not match expected format")
            logging.warning(f"Issue configuration item: {e.path}")
            raise ConfigurationLoadError() from e

        logging.info(f"Configuration loaded.")

    def collapse_settings(self) -> CollapseSettings:
        collapse = self.config["collapse"]
        return CollapseSettings(
            structural_probability=collapse["structural_probability"],
            free_threshold=collapse["free_threshold"],
            hazard_slope=collapse["hazard_slope"],
            layer_danger_bonus=collapse["layer_danger_bonus"],
        )

    @property
    def announce_delay(self) -> float:
        return self.config["collapse"]["announce_delay_ms"] / 1000
