"""
Configuration model for the codex rules engine.
"""

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("codex-engine")

ENV_PREFIX = "CODEX_ENGINE_"


class EngineConfig(BaseModel):
    """Tunable bounds and capping laws for the rules engine.

    Every engine entry point accepts an optional config; when it is omitted
    the defaults below apply. Instances are plain values, so callers can
    share one across threads.
    """

    # Loadout enumeration
    max_branching: int = Field(
        default=64,
        ge=1,
        description="Largest fan-out a single wargear option may add to one loadout"
    )
    max_loadouts_per_model_type: int = Field(
        default=4096,
        ge=1,
        description="Largest number of loadouts one model type may accumulate"
    )
    max_enumerated_count: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Largest K accepted in an 'up to K of the following' selection"
    )

    # Capping law
    hit_wound_cap: int = Field(
        default=1,
        ge=0,
        description="Absolute bound applied to the net hit and wound modifier"
    )

    model_config = {"frozen": True}

    @field_validator("max_loadouts_per_model_type")
    @classmethod
    def _loadouts_cover_branching(cls, value: int) -> int:
        if value < 2:
            raise ValueError("max_loadouts_per_model_type must allow at least the default and one variant")
        return value

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``CODEX_ENGINE_*`` environment variables.

        A ``.env`` file in the working directory is loaded first when present.
        Unset variables keep their defaults.

        Returns:
            EngineConfig populated from the environment

        Raises:
            pydantic.ValidationError: If a variable holds an out-of-range value
        """
        if not load_dotenv():
            logger.debug("No .env file found, reading process environment only")

        values: dict[str, str] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw.strip():
                values[name] = raw.strip()
        return cls.model_validate(values)
