"""
Mechanic model for the combat rules engine.

A Mechanic is one structured rule effect (a roll modifier, a re-roll, an
ignored modifier, a conditional gate around other mechanics, ...) together
with the conditions under which it applies and where it came from. Every
variant carries a ``kind`` tag and the union is discriminated on it, so
mechanics round-trip through JSON unchanged:

    >>> data = MECHANIC_ADAPTER.dump_python([mechanic], mode="json")
    >>> MECHANIC_ADAPTER.validate_python(data) == [mechanic]
    True
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

FROZEN = {"frozen": True}

Role = Literal["attacker", "defender"]

Entity = Literal[
    "thisArmy",
    "thisUnit",
    "thisModel",
    "opponentArmy",
    "opposingUnit",
    "opposingModel",
    "targetUnit",
    "targetModel",
]

OWN_ENTITIES = ("thisArmy", "thisUnit", "thisModel")

Operator = Literal[
    "equals",
    "notEquals",
    "greaterThan",
    "greaterThanOrEqualTo",
    "lessThan",
    "lessThanOrEqualTo",
    "includes",
    "notIncludes",
]


class RollAttribute(str, Enum):
    """Stage of combat resolution a modifier applies to; selects the capping law."""
    HIT = "hit"
    WOUND = "wound"
    SAVE = "save"

    @classmethod
    def _missing_(cls, value):
        # Rule data abbreviates roll attributes to h/w/s.
        if isinstance(value, str):
            short = {"h": cls.HIT, "w": cls.WOUND, "s": cls.SAVE}
            return short.get(value.strip().lower())
        return None


class MechanicSourceType(str, Enum):
    CORE = "core"
    FACTION = "faction"
    DETACHMENT = "detachment"
    UNIT = "unit"
    LEADER = "leader"
    ENHANCEMENT = "enhancement"
    WEAPON = "weapon"
    STRATAGEM = "stratagem"
    SITUATIONAL = "situational"


# Lower numbers resolve first when sources are listed for display.
SOURCE_PRIORITY: dict[MechanicSourceType, int] = {
    MechanicSourceType.CORE: 0,
    MechanicSourceType.FACTION: 10,
    MechanicSourceType.DETACHMENT: 20,
    MechanicSourceType.UNIT: 30,
    MechanicSourceType.LEADER: 40,
    MechanicSourceType.ENHANCEMENT: 50,
    MechanicSourceType.WEAPON: 60,
    MechanicSourceType.STRATAGEM: 100,
    MechanicSourceType.SITUATIONAL: 110,
}


class MechanicSource(BaseModel):
    """Provenance of a mechanic: which ability, weapon or stratagem produced it."""
    model_config = FROZEN

    type: MechanicSourceType
    name: str
    unit_name: str | None = None
    attribute: str | None = Field(default=None, description="Weapon attribute text, for weapon sources")

    @property
    def priority(self) -> int:
        return SOURCE_PRIORITY[self.type]


class Condition(BaseModel):
    """A test against combat state that must hold for a mechanic to apply.

    Exactly one of ``state``, ``keywords``, ``abilities`` or ``attribute`` is
    normally set; a condition with none of them always passes.
    """
    model_config = FROZEN

    entity: Entity = "thisUnit"
    state: str | None = None
    attribute: str | None = None
    keywords: list[str] = Field(default_factory=list)
    abilities: list[str] = Field(default_factory=list)
    operator: Operator = "equals"
    value: bool | int | str | list[str] | None = True


# ---------------------------------------------------------------------------
# Mechanic variants
# ---------------------------------------------------------------------------

class _MechanicBase(BaseModel):
    model_config = FROZEN

    entity: Entity = Field(default="thisUnit", description="Whose rolls or profile the mechanic changes")
    conditions: list[Condition] = Field(default_factory=list)
    source: MechanicSource | None = None

    def with_source(self, source: MechanicSource) -> "Mechanic":
        """Copy of this mechanic tagged with ``source``."""
        return self.model_copy(update={"source": source})

    @property
    def targets_own_side(self) -> bool:
        return self.entity in OWN_ENTITIES


class ModifierMechanic(_MechanicBase):
    """Signed modifier to a roll: +1 to hit, -1 to wound, ..."""
    kind: Literal["modifier"] = "modifier"
    attribute: RollAttribute
    value: int


class RerollMechanic(_MechanicBase):
    kind: Literal["reroll"] = "reroll"
    attribute: RollAttribute
    scope: Literal["ones", "failed", "all"] = "all"


class IgnoreMechanic(_MechanicBase):
    """Ignore modifiers to a roll; applied after capping."""
    kind: Literal["ignore"] = "ignore"
    attribute: RollAttribute
    scope: Literal["all", "penalties", "bonuses", "cover"] = "penalties"


class AutoSuccessMechanic(_MechanicBase):
    kind: Literal["auto-success"] = "auto-success"
    attribute: RollAttribute


class CriticalThresholdMechanic(_MechanicBase):
    """Rolls of ``value``+ succeed regardless of the target number (ANTI-X 4+)."""
    kind: Literal["critical-threshold"] = "critical-threshold"
    attribute: RollAttribute
    value: int = Field(ge=2, le=6)


class StaticNumberMechanic(_MechanicBase):
    """Sets a model or weapon characteristic to a fixed value."""
    kind: Literal["static-number"] = "static-number"
    characteristic: str
    value: int | str


class AddsKeywordMechanic(_MechanicBase):
    kind: Literal["adds-keyword"] = "adds-keyword"
    keywords: list[str]


class AddsAbilityMechanic(_MechanicBase):
    """Grants abilities; ``value`` carries a parameter such as Feel No Pain 5+."""
    kind: Literal["adds-ability"] = "adds-ability"
    abilities: list[str]
    value: int | str | None = None


class CharacteristicBonusMechanic(_MechanicBase):
    """Adds to a model or weapon characteristic, e.g. +1 attack at half range."""
    kind: Literal["characteristic-bonus"] = "characteristic-bonus"
    characteristic: str
    value: int


class MortalWoundsMechanic(_MechanicBase):
    kind: Literal["mortal-wounds"] = "mortal-wounds"
    value: int | str


class ConditionalMechanic(_MechanicBase):
    """Applies ``mechanics`` only while its own ``conditions`` hold."""
    kind: Literal["conditional"] = "conditional"
    mechanics: list["Mechanic"] = Field(default_factory=list)


Mechanic = Annotated[
    Union[
        ModifierMechanic,
        RerollMechanic,
        IgnoreMechanic,
        AutoSuccessMechanic,
        CriticalThresholdMechanic,
        StaticNumberMechanic,
        CharacteristicBonusMechanic,
        AddsKeywordMechanic,
        AddsAbilityMechanic,
        MortalWoundsMechanic,
        ConditionalMechanic,
    ],
    Field(discriminator="kind"),
]

ConditionalMechanic.model_rebuild()

MECHANIC_ADAPTER: TypeAdapter[list[Mechanic]] = TypeAdapter(list[Mechanic])
SINGLE_MECHANIC_ADAPTER: TypeAdapter[Mechanic] = TypeAdapter(Mechanic)


# ---------------------------------------------------------------------------
# Modifiers and capping results
# ---------------------------------------------------------------------------

class RollModifier(BaseModel):
    """A signed modifier collected for one roll during one resolution."""
    model_config = FROZEN

    value: int
    source: MechanicSource
    description: str | None = None
    is_capped: bool = False


class CappedModifierResult(BaseModel):
    model_config = FROZEN

    modifiers: list[RollModifier]
    net_value: int
    was_capped: bool


class ModifierBreakdownEntry(BaseModel):
    model_config = FROZEN

    source: str
    value: int


class ModifierBreakdown(BaseModel):
    """Display form of a roll's modifiers."""
    model_config = FROZEN

    bonuses: list[ModifierBreakdownEntry]
    penalties: list[ModifierBreakdownEntry]
    net_modifier: int
    capped_to: int | None = None


# ---------------------------------------------------------------------------
# Abilities and army context
# ---------------------------------------------------------------------------

class CoreAbility(BaseModel):
    """A core-rulebook ability.

    Parameterized abilities (FEEL NO PAIN 5+, DEADLY DEMISE D3) store their
    mechanics as templates whose values may be the placeholder
    ``"{parameter}"``; the registry substitutes the unit's parameter and
    validates the result into Mechanic values.
    """
    model_config = FROZEN

    name: str
    type: Literal["static", "parameterized"] = "static"
    description: str = ""
    mechanics: list[dict[str, Any]] = Field(default_factory=list)


class FactionAbility(BaseModel):
    model_config = FROZEN

    id: str
    name: str
    description: str = ""
    legend: str = ""
    mechanics: list[Mechanic] = Field(default_factory=list)


class Ability(BaseModel):
    """An ability listed inline on a unit, with its mechanics already extracted."""
    model_config = FROZEN

    id: str | None = None
    name: str
    parameter: str | None = None
    mechanics: list[Mechanic] = Field(default_factory=list)


class CoreAbilityRef(BaseModel):
    """A unit's reference to a core ability by name, e.g. ('FEEL NO PAIN', '5+')."""
    model_config = FROZEN

    name: str
    parameter: str | None = None


class ActiveStratagem(BaseModel):
    model_config = FROZEN

    id: str
    name: str
    mechanics: list[Mechanic] = Field(default_factory=list)
    applies_to: Role = "attacker"


class ArmyContext(BaseModel):
    """Ambient mechanic sources of one combatant for one resolution.

    Attributes:
        faction_abilities: Faction abilities already resolved from the registry.
        faction_ability_ids: Faction ability ids still to be looked up.
        core_abilities: Core abilities referenced by name.
        unit_abilities: Inline abilities of the combatant unit.
        unit_name: Display name of the combatant unit.
        leader_abilities: Inline abilities of an attached leader.
        stratagems: Stratagems active this phase, on either side.
    """
    model_config = FROZEN

    faction_abilities: list[FactionAbility] = Field(default_factory=list)
    faction_ability_ids: list[str] = Field(default_factory=list)
    core_abilities: list[CoreAbilityRef] = Field(default_factory=list)
    unit_abilities: list[Ability] = Field(default_factory=list)
    unit_name: str | None = None
    leader_abilities: list[Ability] = Field(default_factory=list)
    stratagems: list[ActiveStratagem] = Field(default_factory=list)


class CollectedMechanics(BaseModel):
    """Collector output with the references the registries could not resolve."""
    model_config = FROZEN

    mechanics: list[Mechanic]
    missing_references: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Combat profiles and resolution output
# ---------------------------------------------------------------------------

class SpecialEffect(BaseModel):
    """A weapon rule surfaced for display, e.g. SUSTAINED HITS 2."""
    model_config = FROZEN

    type: str
    value: bool | int | str = True
    source: MechanicSource


class WeaponProfile(BaseModel):
    """Attacking weapon characteristics.

    Attributes:
        skill: Ballistic or weapon skill target (3 for BS 3+)
        attributes: Weapon rules as printed, e.g. ["HEAVY", "ANTI-INFANTRY 4+"]
    """

    name: str
    attacks: int | str = 1
    skill: int = Field(default=4, ge=2, le=6)
    strength: int = Field(ge=1)
    ap: int = 0
    damage: int | str = 1
    range: int | str | None = None
    attributes: list[str] = Field(default_factory=list)


class TargetProfile(BaseModel):
    """Defending model characteristics."""

    name: str = ""
    toughness: int = Field(ge=1)
    save: int = Field(default=7, ge=2, le=7)
    invulnerable_save: int | None = Field(default=None, ge=2, le=6)
    wounds: int = 1
    keywords: list[str] = Field(default_factory=list)


class RollResolution(BaseModel):
    """Final parameters of one roll.

    ``target`` is the number to roll on a D6 (0 when the roll succeeds
    automatically); ``modifiers`` is the capped modifier result before any
    ignore was applied and ``net_modifier`` the value actually used.
    """
    model_config = FROZEN

    attribute: RollAttribute
    target: int
    net_modifier: int
    modifiers: CappedModifierResult
    ignored: list[RollModifier] = Field(default_factory=list)
    reroll: Literal["none", "ones", "failed", "all"] = "none"
    auto_success: bool = False
    critical_threshold: int = 6
    invulnerable_used: bool = False
    cover_applied: bool = False


class ResolvedRollParameters(BaseModel):
    model_config = FROZEN

    hit: RollResolution
    wound: RollResolution
    save: RollResolution
    weapon: WeaponProfile
    target: TargetProfile
    feel_no_pain: int | None = None
    added_keywords: dict[str, list[str]] = Field(default_factory=dict)
    added_abilities: dict[str, list[str]] = Field(default_factory=dict)
    special_effects: list[SpecialEffect] = Field(default_factory=list)
    applied: list[Mechanic] = Field(default_factory=list)
    not_applied: list[Mechanic] = Field(default_factory=list)
    missing_references: list[str] = Field(default_factory=list)
