"""
Weapon rules as mechanics.

Translates printed weapon rules (TORRENT, HEAVY, ANTI-INFANTRY 4+, ...) into
mechanics tagged with a weapon source, plus a SpecialEffect for display.
Rules that change no roll (ASSAULT, PRECISION, ...) yield only the effect.
"""

import re
from typing import Iterable

from .models import (
    AddsAbilityMechanic,
    AutoSuccessMechanic,
    CharacteristicBonusMechanic,
    Condition,
    CriticalThresholdMechanic,
    IgnoreMechanic,
    Mechanic,
    MechanicSource,
    MechanicSourceType,
    ModifierMechanic,
    RerollMechanic,
    RollAttribute,
    SpecialEffect,
)

# Rules with no mechanic, shown as effects only
DISPLAY_ONLY = {
    "ASSAULT": "assault",
    "PRECISION": "precision",
    "HAZARDOUS": "hazardous",
    "BLAST": "blast",
    "INDIRECT FIRE": "indirect-fire",
    "PISTOL": "pistol",
    "EXTRA ATTACKS": "extra-attacks",
    "ONE SHOT": "one-shot",
    "PSYCHIC": "psychic",
}

_ANTI = re.compile(r"^ANTI-(.+?)\s+(\d)\+$")


def _state(entity: str, state: str) -> Condition:
    return Condition(entity=entity, state=state, operator="equals", value=True)


def _trailing_number(attribute: str, prefix: str) -> int:
    match = re.search(r"(\d+)", attribute[len(prefix):])
    return int(match.group(1)) if match else 1


def parse_weapon_attribute(attribute: str, weapon_name: str) -> tuple[Mechanic | None, SpecialEffect | None]:
    """Mechanic and display effect of one weapon rule.

    Args:
        attribute: Rule as printed, any case, e.g. "Rapid Fire 1"
        weapon_name: Weapon carrying the rule; becomes the source name

    Returns:
        (mechanic or None, effect or None); both None for unknown rules
    """
    attr = attribute.upper().strip()
    source = MechanicSource(type=MechanicSourceType.WEAPON, name=weapon_name, attribute=attr)

    def effect(kind: str, value: bool | int | str = True) -> SpecialEffect:
        return SpecialEffect(type=kind, value=value, source=source)

    if attr == "TORRENT":
        return AutoSuccessMechanic(attribute=RollAttribute.HIT, source=source), effect("torrent")
    if attr == "HEAVY":
        mechanic = ModifierMechanic(
            attribute=RollAttribute.HIT, value=1, source=source,
            conditions=[_state("thisUnit", "isStationary")],
        )
        return mechanic, effect("heavy")
    if attr == "LANCE":
        mechanic = ModifierMechanic(
            attribute=RollAttribute.WOUND, value=1, source=source,
            conditions=[_state("thisUnit", "hasChargedThisTurn")],
        )
        return mechanic, effect("lance")
    if attr == "TWIN-LINKED":
        return RerollMechanic(attribute=RollAttribute.WOUND, scope="all", source=source), effect("twin-linked")
    if attr == "IGNORES COVER":
        mechanic = IgnoreMechanic(entity="targetUnit", attribute=RollAttribute.SAVE, scope="cover", source=source)
        return mechanic, effect("ignores-cover")
    if attr.startswith("RAPID FIRE"):
        value = _trailing_number(attr, "RAPID FIRE")
        mechanic = CharacteristicBonusMechanic(
            characteristic="a", value=value, source=source,
            conditions=[_state("targetUnit", "inHalfRange")],
        )
        return mechanic, effect("rapid-fire", value)
    if attr.startswith("MELTA"):
        value = _trailing_number(attr, "MELTA")
        mechanic = CharacteristicBonusMechanic(
            characteristic="d", value=value, source=source,
            conditions=[_state("targetUnit", "inHalfRange")],
        )
        return mechanic, effect("melta", value)
    if attr in ("LETHAL HITS", "DEVASTATING WOUNDS"):
        mechanic = AddsAbilityMechanic(abilities=[attr], value=True, source=source)
        return mechanic, effect(attr.lower().replace(" ", "-"))
    if attr.startswith("SUSTAINED HITS"):
        value = _trailing_number(attr, "SUSTAINED HITS")
        mechanic = AddsAbilityMechanic(abilities=["SUSTAINED HITS"], value=value, source=source)
        return mechanic, effect("sustained-hits", value)

    anti = _ANTI.match(attr)
    if anti:
        keyword, threshold = anti.group(1).strip(), int(anti.group(2))
        mechanic = CriticalThresholdMechanic(
            attribute=RollAttribute.WOUND, value=threshold, source=source,
            conditions=[Condition(entity="targetUnit", keywords=[keyword], operator="includes", value=keyword)],
        )
        return mechanic, effect("anti", f"{keyword} {threshold}+")

    if attr in DISPLAY_ONLY:
        return None, effect(DISPLAY_ONLY[attr])
    return None, None


def weapon_attribute_mechanics(attributes: Iterable[str], weapon_name: str) -> tuple[list[Mechanic], list[SpecialEffect]]:
    """Mechanics and display effects of every rule on a weapon, in order."""
    mechanics: list[Mechanic] = []
    effects: list[SpecialEffect] = []
    for attribute in attributes:
        mechanic, special = parse_weapon_attribute(attribute, weapon_name)
        if mechanic is not None:
            mechanics.append(mechanic)
        if special is not None:
            effects.append(special)
    return mechanics, effects


def has_weapon_attribute(attributes: Iterable[str], name: str) -> bool:
    target = name.upper()
    return any(attribute.upper().startswith(target) for attribute in attributes)
