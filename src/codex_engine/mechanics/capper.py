"""
Modifier capping law.

Hit and wound modifiers are summed and the net is held to +/-1 (the bound is
``EngineConfig.hit_wound_cap``). Save modifiers are summed and never capped.
When the net is capped, every contributing modifier is flagged ``is_capped``;
the law does not say which modifiers caused the overflow, so none is singled
out.
"""

from typing import Sequence

from ..config import EngineConfig
from .models import (
    CappedModifierResult,
    ModifierBreakdown,
    ModifierBreakdownEntry,
    RollAttribute,
    RollModifier,
)


def separate_modifiers(modifiers: Sequence[RollModifier]) -> tuple[list[RollModifier], list[RollModifier]]:
    """Split modifiers into (bonuses, penalties); zero-valued ones are in neither."""
    bonuses = [m for m in modifiers if m.value > 0]
    penalties = [m for m in modifiers if m.value < 0]
    return bonuses, penalties


def calculate_net_modifier(modifiers: Sequence[RollModifier]) -> int:
    """Uncapped sum of ``modifiers``."""
    return sum(m.value for m in modifiers)


def cap_modifiers(
    modifiers: Sequence[RollModifier],
    attribute: RollAttribute | str,
    config: EngineConfig | None = None,
) -> CappedModifierResult:
    """Apply the capping law for one roll.

    Args:
        modifiers: Modifiers collected for the roll, in collection order
        attribute: Which roll they modify (``hit``, ``wound``, ``save`` or h/w/s)
        config: Supplies the hit/wound bound; defaults to 1

    Returns:
        CappedModifierResult with the modifiers in input order

    Example:
        >>> cap_modifiers([plus_two, plus_one], "hit").net_value
        1
    """
    attribute = RollAttribute(attribute)
    bound = (config or EngineConfig()).hit_wound_cap
    bonuses, penalties = separate_modifiers(modifiers)
    net = sum(m.value for m in bonuses) + sum(m.value for m in penalties)

    if attribute is RollAttribute.SAVE:
        return CappedModifierResult(modifiers=list(modifiers), net_value=net, was_capped=False)

    capped = max(-bound, min(bound, net))
    was_capped = capped != net
    flagged = [m.model_copy(update={"is_capped": was_capped}) for m in modifiers]
    return CappedModifierResult(modifiers=flagged, net_value=capped, was_capped=was_capped)


def modifier_breakdown(
    modifiers: Sequence[RollModifier],
    attribute: RollAttribute | str,
    config: EngineConfig | None = None,
) -> ModifierBreakdown:
    """Bonuses and penalties by source name, with the capped net."""
    bonuses, penalties = separate_modifiers(modifiers)
    result = cap_modifiers(modifiers, attribute, config)
    return ModifierBreakdown(
        bonuses=[ModifierBreakdownEntry(source=m.source.name, value=m.value) for m in bonuses],
        penalties=[ModifierBreakdownEntry(source=m.source.name, value=m.value) for m in penalties],
        net_modifier=result.net_value,
        capped_to=result.net_value if result.was_capped else None,
    )
