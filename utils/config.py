"""
Game configuration for the Blokus arena server and engine.

Settings can be built in code, loaded from a YAML/JSON file, or pointed to by
the ``BLOKUS_CONFIG`` environment variable.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

CONFIG_ENV_VAR = "BLOKUS_CONFIG"
LOG_LEVEL_ENV_VAR = "BLOKUS_LOG_LEVEL"


@dataclass
class GameSettings:
    """
    Tunable game parameters.

    Attributes:
        board_size: Side length of the square board
        time_limit: Seconds per placement turn
        item_phase_time: Seconds the item phase stays open
        pressure_time_limit: Turn length for a player under time pressure
        max_timeouts: Consecutive timeouts before a player is force-settled
        ai_delay_min: Lower bound of the cosmetic AI thinking delay (seconds)
        ai_delay_max: Upper bound of the cosmetic AI thinking delay (seconds)
        agent_timeout: Seconds an agent may spend choosing a move
        request_timeout: Seconds a client waits for a reply before rolling back
        time_tick_tolerance: Regression (seconds) tolerated before a time tick is dropped
        hand_limit: Maximum item cards held per player
        min_special_tiles: Lower bound of special tiles per creative game
        max_special_tiles: Upper bound of special tiles per creative game
        max_barriers: Maximum barrier tiles per creative game
        safe_zone_radius: Chebyshev radius around start corners kept free of tiles
        min_tile_distance: Minimum Manhattan distance between two special tiles
        creative: Enable the creative overlay (tiles, effects, item cards)
        ai_proxy: Let an AI play for humans who go offline in multiplayer
        seed: Random seed (None = nondeterministic)
    """

    board_size: int = 20
    time_limit: int = 60
    item_phase_time: int = 30
    pressure_time_limit: int = 5
    max_timeouts: int = 3
    ai_delay_min: float = 1.0
    ai_delay_max: float = 2.0
    agent_timeout: float = 5.0
    request_timeout: float = 10.0
    time_tick_tolerance: int = 2
    hand_limit: int = 3
    min_special_tiles: int = 10
    max_special_tiles: int = 14
    max_barriers: int = 3
    safe_zone_radius: int = 3
    min_tile_distance: int = 2
    creative: bool = False
    ai_proxy: bool = True
    seed: Optional[int] = None

    def __post_init__(self):
        if self.board_size < 5:
            raise ValueError(f"board_size must be at least 5, got {self.board_size}")
        if self.time_limit <= 0 or self.item_phase_time <= 0 or self.pressure_time_limit <= 0:
            raise ValueError("time limits must be positive")
        if self.max_timeouts < 1:
            raise ValueError(f"max_timeouts must be at least 1, got {self.max_timeouts}")
        if self.ai_delay_min > self.ai_delay_max:
            raise ValueError("ai_delay_min must not exceed ai_delay_max")
        if self.min_special_tiles > self.max_special_tiles:
            raise ValueError("min_special_tiles must not exceed max_special_tiles")
        if self.hand_limit < 1:
            raise ValueError(f"hand_limit must be at least 1, got {self.hand_limit}")

    @classmethod
    def from_dict(cls, config_dict: dict) -> "GameSettings":
        """Create settings from a dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered_dict = {k: v for k, v in (config_dict or {}).items() if k in valid_keys}
        return cls(**filtered_dict)

    @classmethod
    def from_file(cls, config_path: Path) -> "GameSettings":
        """Load settings from a YAML or JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                config_dict = yaml.safe_load(f)
            elif config_path.suffix.lower() == ".json":
                config_dict = json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {config_path.suffix}")

        return cls.from_dict(config_dict)

    @classmethod
    def from_env(cls) -> "GameSettings":
        """Settings from the file named by ``BLOKUS_CONFIG``, else defaults."""
        path = os.getenv(CONFIG_ENV_VAR)
        if path:
            return cls.from_file(Path(path))
        return cls()

    def to_dict(self) -> dict:
        return {
            field.name: getattr(self, field.name)
            for field in self.__dataclass_fields__.values()
        }

    def save_to_file(self, config_path: Path):
        """Save settings to a YAML or JSON file."""
        config_path = Path(config_path)
        config_dict = self.to_dict()

        with open(config_path, "w") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
            elif config_path.suffix.lower() == ".json":
                json.dump(config_dict, f, indent=2, sort_keys=False)
            else:
                raise ValueError(f"Unsupported config file format: {config_path.suffix}")

    def log_config(self, logger: logging.Logger):
        """Log the effective configuration."""
        logger.info("=" * 60)
        logger.info("Game Settings")
        logger.info("=" * 60)
        logger.info(f"Mode: {'CREATIVE' if self.creative else 'CLASSIC'}")
        logger.info(f"Board Size: {self.board_size}")
        logger.info(f"Turn Time Limit: {self.time_limit}s (pressure: {self.pressure_time_limit}s)")
        logger.info(f"Item Phase Time: {self.item_phase_time}s")
        logger.info(f"Max Consecutive Timeouts: {self.max_timeouts}")
        logger.info(f"AI Delay: {self.ai_delay_min}-{self.ai_delay_max}s (agent timeout {self.agent_timeout}s)")
        logger.info(f"AI Proxy For Offline Players: {self.ai_proxy}")
        if self.creative:
            logger.info(f"Special Tiles: {self.min_special_tiles}-{self.max_special_tiles} (max barriers {self.max_barriers})")
            logger.info(f"Hand Limit: {self.hand_limit}")
        logger.info(f"Seed: {self.seed if self.seed is not None else 'None (random)'}")
        logger.info("=" * 60)


def log_level_from_env(default: str = "INFO") -> int:
    """Numeric log level from ``BLOKUS_LOG_LEVEL``."""
    name = os.getenv(LOG_LEVEL_ENV_VAR, default).upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level in {LOG_LEVEL_ENV_VAR}: {name}")
    return level
