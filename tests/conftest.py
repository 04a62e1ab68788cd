"""
Pytest configuration and fixtures for codex-engine tests.
"""

import sys
from pathlib import Path
import pytest

# Add src directory to Python path to allow importing codex_engine
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from codex_engine.wargear.models import (  # noqa: E402
    CompositionEntry,
    DatasheetOption,
    UnitWargear,
    WeaponEntry,
)
from codex_engine.mechanics.collector import AbilityCollector  # noqa: E402
from codex_engine.mechanics.registry import CoreAbilityRegistry, FactionAbilityRegistry  # noqa: E402


CORE_ABILITIES = {
    "abilities": {
        "FEEL NO PAIN": {
            "type": "parameterized",
            "description": "Each time a model would lose a wound, roll one D6.",
            "mechanics": [
                {"kind": "adds-ability", "abilities": ["FEEL NO PAIN"], "value": "{parameter}"},
            ],
        },
        "STEALTH": {
            "type": "static",
            "description": "Ranged attacks against this unit subtract 1 from the hit roll.",
            "mechanics": [
                {"kind": "modifier", "entity": "opposingUnit", "attribute": "hit", "value": -1},
            ],
        },
        "FIRING DECK": {
            "type": "parameterized",
            "mechanics": [
                {"kind": "modifier", "attribute": "hit", "value": "{parameter}"},
            ],
        },
        "LONE OPERATIVE": {"type": "static", "mechanics": []},
    }
}

FACTION_ABILITIES = {
    "faction_abilities": [
        {
            "id": "oath-of-moment",
            "name": "Oath of Moment",
            "description": "Re-roll hit rolls against the chosen target.",
            "mechanics": [
                {"kind": "reroll", "attribute": "hit", "scope": "all"},
                {"kind": "modifier", "attribute": "wound", "value": 1},
            ],
        },
        {
            "id": "shadow-in-the-warp",
            "name": "Shadow in the Warp",
            "mechanics": [],
        },
    ]
}


@pytest.fixture
def squad() -> UnitWargear:
    """A two-model-type squad with sergeant swaps, a ratio swap and one unreadable line."""
    return UnitWargear(
        datasheet_id="sq1",
        name="Battle Squad",
        default_loadout="Every model is equipped with: bolt pistol; bolt rifle; close combat weapon.",
        unit_composition=[
            CompositionEntry(description="1 Sergeant", min=1, max=1),
            CompositionEntry(description="4-9 Troopers", min=4, max=9),
        ],
        weapons=[
            WeaponEntry(id="bolt-pistol", name="Bolt pistol"),
            WeaponEntry(id="bolt-rifle", name="Bolt rifle"),
            WeaponEntry(id="ccw", name="Close combat weapon"),
            WeaponEntry(id="power-sword", name="Power sword"),
            WeaponEntry(id="plasma-pistol", name="Plasma pistol"),
            WeaponEntry(id="grenade-launcher", name="Grenade launcher"),
        ],
        options=[
            DatasheetOption(datasheet_id="sq1", line=1,
                            description="The Sergeant's close combat weapon can be replaced with 1 power sword."),
            DatasheetOption(datasheet_id="sq1", line=2,
                            description="The Sergeant's bolt pistol can be replaced with 1 plasma pistol."),
            DatasheetOption(datasheet_id="sq1", line=3,
                            description="For every 5 models in this unit, 1 Trooper's bolt rifle can be "
                                        "replaced with 1 grenade launcher."),
            DatasheetOption(datasheet_id="sq1", line=4,
                            description="This unit's banner is carried with pride."),
        ],
    )


@pytest.fixture
def core_registry() -> CoreAbilityRegistry:
    return CoreAbilityRegistry.from_mapping(CORE_ABILITIES)


@pytest.fixture
def faction_registry() -> FactionAbilityRegistry:
    return FactionAbilityRegistry.from_mapping(FACTION_ABILITIES)


@pytest.fixture
def collector(core_registry, faction_registry) -> AbilityCollector:
    return AbilityCollector(core_registry, faction_registry)
