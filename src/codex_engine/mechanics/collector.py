"""
Ability collector.

Resolves the abilities referenced by a combatant's ArmyContext into concrete
mechanics tagged with their provenance. Registries are injected; the
collector only reads them. A reference the registries cannot resolve yields
no mechanics and is reported, never raised.
"""

import logging
from typing import Iterable

from pydantic import ValidationError

from .models import (
    Ability,
    ArmyContext,
    CollectedMechanics,
    FactionAbility,
    Mechanic,
    MechanicSource,
    MechanicSourceType,
    Role,
    RollAttribute,
)
from .registry import CoreAbilityRegistry, FactionAbilityRegistry

logger = logging.getLogger("codex-engine.mechanics")


def tag_mechanics(mechanics: Iterable[Mechanic], source: MechanicSource) -> list[Mechanic]:
    """Copies of ``mechanics`` carrying ``source``, in input order."""
    return [mechanic.with_source(source) for mechanic in mechanics]


class AbilityCollector:
    """Collects the mechanics a combatant brings to one resolution.

    Order of the result, each part in input order:
    unit abilities, leader abilities, core abilities, faction abilities
    (resolved ones, then those referenced by id), then stratagems active
    for the role.

    Example:
        >>> collector = AbilityCollector(core_registry, faction_registry)
        >>> [m.source.name for m in collector.collect(army, "attacker")]
        ['Oath of Moment', 'Oath of Moment']
    """

    def __init__(
        self,
        core_registry: CoreAbilityRegistry | None = None,
        faction_registry: FactionAbilityRegistry | None = None,
    ) -> None:
        self.core_registry = core_registry or CoreAbilityRegistry()
        self.faction_registry = faction_registry or FactionAbilityRegistry()

    # -- per-source collection ----------------------------------------------

    @staticmethod
    def collect_faction_abilities(abilities: Iterable[FactionAbility]) -> list[Mechanic]:
        """Faction mechanics tagged ``{type: faction, name: ability.name}``."""
        mechanics: list[Mechanic] = []
        for ability in abilities:
            source = MechanicSource(type=MechanicSourceType.FACTION, name=ability.name)
            mechanics.extend(tag_mechanics(ability.mechanics, source))
        return mechanics

    @staticmethod
    def collect_inline_abilities(abilities: Iterable[Ability], source_type: MechanicSourceType,
                                 unit_name: str | None = None) -> list[Mechanic]:
        mechanics: list[Mechanic] = []
        for ability in abilities:
            source = MechanicSource(type=source_type, name=ability.name, unit_name=unit_name)
            mechanics.extend(tag_mechanics(ability.mechanics, source))
        return mechanics

    def collect_core_abilities(self, army: ArmyContext, missing: list[str]) -> list[Mechanic]:
        mechanics: list[Mechanic] = []
        for ref in army.core_abilities:
            try:
                resolved = self.core_registry.resolve(ref.name, ref.parameter)
            except ValidationError as e:
                logger.warning(f"Core ability {ref.name!r} rejected parameter {ref.parameter!r}: {e.error_count()} errors")
                missing.append(f"core:{ref.name}")
                continue
            if resolved is None:
                logger.debug(f"Core ability {ref.name!r} is not in the registry")
                missing.append(f"core:{ref.name}")
                continue
            ability = self.core_registry.get(ref.name)
            name = f"{ability.name} {ref.parameter}" if ref.parameter else ability.name
            source = MechanicSource(type=MechanicSourceType.CORE, name=name, unit_name=army.unit_name)
            mechanics.extend(tag_mechanics(resolved, source))
        return mechanics

    # -- entry points ---------------------------------------------------------

    def collect_with_diagnostics(self, army: ArmyContext, role: Role) -> CollectedMechanics:
        """Collect mechanics and report references that could not be resolved.

        Args:
            army: The combatant's ability references
            role: ``attacker`` or ``defender``; selects which stratagems apply

        Returns:
            CollectedMechanics; ``missing_references`` entries look like
            ``core:<name>`` or ``faction:<id>``
        """
        missing: list[str] = []
        mechanics: list[Mechanic] = []

        mechanics.extend(self.collect_inline_abilities(army.unit_abilities, MechanicSourceType.UNIT, army.unit_name))
        mechanics.extend(self.collect_inline_abilities(army.leader_abilities, MechanicSourceType.LEADER, army.unit_name))
        mechanics.extend(self.collect_core_abilities(army, missing))

        found, unknown_ids = self.faction_registry.resolve_ids(army.faction_ability_ids)
        for ability_id in unknown_ids:
            logger.debug(f"Faction ability {ability_id!r} is not in the registry")
        missing.extend(f"faction:{ability_id}" for ability_id in unknown_ids)
        mechanics.extend(self.collect_faction_abilities([*army.faction_abilities, *found]))

        for stratagem in army.stratagems:
            if stratagem.applies_to != role:
                continue
            source = MechanicSource(type=MechanicSourceType.STRATAGEM, name=stratagem.name)
            mechanics.extend(tag_mechanics(stratagem.mechanics, source))

        return CollectedMechanics(mechanics=mechanics, missing_references=missing)

    def collect(self, army: ArmyContext, role: Role) -> list[Mechanic]:
        """Mechanics for one combatant in one role, in collection order."""
        return self.collect_with_diagnostics(army, role).mechanics


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def filter_by_roll_attribute(mechanics: Iterable[Mechanic], attribute: RollAttribute | str) -> list[Mechanic]:
    """Modifiers, re-rolls, ignores and auto-successes that touch one roll."""
    attribute = RollAttribute(attribute)
    return [
        mechanic for mechanic in mechanics
        if mechanic.kind in ("modifier", "reroll", "ignore", "auto-success", "critical-threshold")
        and mechanic.attribute == attribute
    ]


def filter_by_kind(mechanics: Iterable[Mechanic], kind: str) -> list[Mechanic]:
    return [mechanic for mechanic in mechanics if mechanic.kind == kind]
