"""
Data models for wargear options, loadouts and their validation.

Raw option text arrives as DatasheetOption records; the parser turns each one
into a ParsedWargearOption; the generator turns a unit's parsed options into
ValidLoadoutGroup and WeaponEligibility values; the validator compares
ModelInstance loadouts against those groups.
"""

from typing import Literal

from pydantic import BaseModel, Field
from shortuuid import random


UNKNOWN = "unknown"
ANY_MODEL = "any"
UNIT_WIDE = "all"

FROZEN = {"frozen": True}


# ---------------------------------------------------------------------------
# Raw input
# ---------------------------------------------------------------------------

class DatasheetOption(BaseModel):
    """One wargear option line as shipped in the unit data set."""
    model_config = FROZEN

    datasheet_id: str = ""
    line: int = Field(default=0, description="Ordering key of the option within its datasheet")
    button: str = Field(default="", description="Footnote marker, or blank")
    description: str = Field(description="Free rule text of the option")


class CompositionEntry(BaseModel):
    """One line of a unit's composition, e.g. '4-9 Terminators'."""
    model_config = FROZEN

    description: str
    min: int = 1
    max: int = 1


class WeaponEntry(BaseModel):
    """A weapon in a unit's catalog, referenced by name in option text."""
    model_config = FROZEN

    id: str
    name: str


class UnitWargear(BaseModel):
    """Everything the loadout generator needs to know about a unit.

    Attributes:
        datasheet_id: Stable id of the unit datasheet; also the id prefix for unresolved items.
        name: Display name of the unit.
        default_loadout: Raw 'X is equipped with: ...' text.
        unit_composition: Model-type roster lines.
        weapons: Weapon catalog used to resolve names to ids.
        wargear_abilities: Names of wargear abilities (ids become 'wargear-ability:<slug>').
        options: Raw option lines, in datasheet order.
    """
    model_config = FROZEN

    datasheet_id: str
    name: str = ""
    default_loadout: str = ""
    unit_composition: list[CompositionEntry] = Field(default_factory=list)
    weapons: list[WeaponEntry] = Field(default_factory=list)
    wargear_abilities: list[str] = Field(default_factory=list)
    options: list[DatasheetOption] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Parsed options
# ---------------------------------------------------------------------------

class WeaponRef(BaseModel):
    """A weapon named in option text, with the count the text gives it."""
    model_config = FROZEN

    name: str
    count: int = 1


class WeaponChoice(BaseModel):
    """One selectable entry of an option; a package bundles several weapons."""
    model_config = FROZEN

    weapons: list[WeaponRef]
    is_package: bool = False


class EquippedCondition(BaseModel):
    """'If this model is equipped with X' gate on a conditional option."""
    model_config = FROZEN

    type: Literal["equipped-with"] = "equipped-with"
    weapon_name: str | None = None
    weapon_names: list[str] = Field(default_factory=list)

    def required_names(self) -> list[str]:
        if self.weapon_names:
            return list(self.weapon_names)
        return [self.weapon_name] if self.weapon_name else []


class TargetingDef(BaseModel):
    """Who an option applies to.

    ``kind`` is the name of the pattern that matched (or ``unknown``);
    ``type`` is the coarser category the generator dispatches on, so
    ``if-unit-size`` and ``if-unit-size-threshold`` share a type.
    """
    model_config = FROZEN

    kind: str = UNKNOWN
    type: str = UNKNOWN
    model_type: str | None = None
    count: int | None = None
    ratio: int | None = None
    max_per_ratio: int | None = None
    max_total: int | None = None
    unit_size_threshold: int | None = None
    condition: EquippedCondition | None = None


class ActionDef(BaseModel):
    """What an option lets the targeted models do."""
    model_config = FROZEN

    kind: str = UNKNOWN
    type: Literal["replace", "add", "unknown"] = UNKNOWN
    removes: list[WeaponRef] = Field(default_factory=list)
    adds: list[WeaponChoice] = Field(default_factory=list)
    is_choice_list: bool = False
    max_selections: int | None = None


class MaxWeaponCount(BaseModel):
    model_config = FROZEN

    weapon: str
    max: int


class OptionConstraints(BaseModel):
    """Restrictions written into an option's text, all of which may co-occur."""
    model_config = FROZEN

    restricted_weapons: list[str] = Field(default_factory=list)
    mutually_exclusive: list[tuple[str, str]] = Field(default_factory=list)
    max_weapon_count: list[MaxWeaponCount] = Field(default_factory=list)
    excluded_weapons: list[str] = Field(default_factory=list)
    no_duplicates: bool = False
    allow_duplicates: bool = False
    must_be_different: bool = False
    max_selections: int | None = None


class ParsedWargearOption(BaseModel):
    """Structured reading of one option line.

    A pure function of ``raw_text``: parsing the same text twice always
    yields equal values.
    """
    model_config = FROZEN

    line: int = 0
    raw_text: str
    wargear_parsed: bool = False
    targeting: TargetingDef = Field(default_factory=TargetingDef)
    action: ActionDef = Field(default_factory=ActionDef)
    constraints: OptionConstraints = Field(default_factory=OptionConstraints)

    @property
    def targeting_kind(self) -> str:
        return self.targeting.kind

    @property
    def action_kind(self) -> str:
        return self.action.kind

    @property
    def is_actionable(self) -> bool:
        """Both axes classified, so the option can feed loadout generation."""
        return self.targeting.type != UNKNOWN and self.action.type != UNKNOWN


# ---------------------------------------------------------------------------
# Generator output
# ---------------------------------------------------------------------------

class DefaultLoadout(BaseModel):
    """Item names one model type starts with, read from default-loadout text."""
    model_config = FROZEN

    model_type: str
    items: list[str]


class EligibilityClause(BaseModel):
    """Which models may take a weapon.

    ``any``: every model; ``model-type``: only the listed model types;
    ``ratio``: ``count`` models per ``ratio`` models in the unit, optionally
    restricted to ``model_types``.
    """
    model_config = FROZEN

    type: Literal["any", "model-type", "ratio"]
    model_types: list[str] = Field(default_factory=list)
    ratio: int | None = None
    count: int | None = None


class WeaponEligibility(BaseModel):
    model_config = FROZEN

    weapon_id: str
    eligibility: list[EligibilityClause]


class GroupTargeting(BaseModel):
    """How many models of a group may take its loadouts."""
    model_config = FROZEN

    type: Literal["ratio", "up-to-n", "n-model-specific"]
    ratio: int | None = None
    count: int | None = None
    max_per_ratio: int | None = None
    max: int | None = None


class ValidLoadoutGroup(BaseModel):
    """The legal loadouts of one model type.

    ``model_type`` is a concrete model name, ``any`` (applies to every model
    in the unit) or ``all`` (unit-wide wargear, skipped by per-model
    validation). Every tuple in ``items`` is sorted and unique.
    """
    model_config = FROZEN

    model_type: str
    items: list[tuple[str, ...]]
    targeting: GroupTargeting | None = None


class GenerationReport(BaseModel):
    """Diagnostics of one generation run."""
    model_config = FROZEN

    unparsed_lines: list[int] = Field(default_factory=list)
    skipped_lines: list[int] = Field(default_factory=list)
    model_types: list[str] = Field(default_factory=list)


class GenerationResult(BaseModel):
    model_config = FROZEN

    datasheet_id: str
    groups: list[ValidLoadoutGroup]
    eligibility: list[WeaponEligibility]
    report: GenerationReport = Field(default_factory=GenerationReport)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class ModelInstance(BaseModel):
    """A model fielded in an engagement; ``loadout`` is caller-owned state."""

    instance_id: str = Field(default_factory=lambda: random(length=8))
    model_type: str
    loadout: list[str] = Field(default_factory=list)


class LoadoutValidationResult(BaseModel):
    model_config = FROZEN

    is_valid: bool
    matched_group: ValidLoadoutGroup | None = None
    closest_match: tuple[str, ...] | None = None
    missing_items: list[str] = Field(default_factory=list)
    extra_items: list[str] = Field(default_factory=list)


class UnitLoadoutValidation(BaseModel):
    model_config = FROZEN

    model_validations: dict[str, LoadoutValidationResult]
    has_any_invalid: bool
    invalid_count: int
