"""
codex-engine - wargear loadout and combat mechanics rules engine for tabletop wargames.
"""

from .config import EngineConfig
from .exceptions import (
    CodexEngineError,
    RegistryLoadError,
    MalformedNumericTokenError,
    BranchingLimitError,
)

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("codex-engine")
except Exception:
    __version__ = "0.1.0"  # Fallback if metadata unavailable

__all__ = [
    "EngineConfig",
    "CodexEngineError",
    "RegistryLoadError",
    "MalformedNumericTokenError",
    "BranchingLimitError",
]
