"""
Wargear rules for codex-engine.

This module provides:
- A parser that classifies free-text wargear options by targeting and action
- A generator that enumerates the legal loadouts of each model type
- A validator that matches a model's loadout against those loadouts
- A fingerprint-keyed cache of generation results
"""

from .models import (
    # Raw unit data
    DatasheetOption,
    CompositionEntry,
    WeaponEntry,
    UnitWargear,
    # Parsed options
    ParsedWargearOption,
    TargetingDef,
    ActionDef,
    OptionConstraints,
    WeaponRef,
    WeaponChoice,
    # Generation output
    ValidLoadoutGroup,
    WeaponEligibility,
    EligibilityClause,
    GenerationResult,
    GenerationReport,
    # Validation
    ModelInstance,
    LoadoutValidationResult,
    UnitLoadoutValidation,
    ANY_MODEL,
    UNIT_WIDE,
    UNKNOWN,
)
from .parser import parse, parse_option, parse_options, describe_unparsed
from .generator import generate_valid_loadouts, build_weapon_eligibility, parse_default_loadout
from .validator import validate_loadout, validate_unit
from .cache import LoadoutCache, unit_fingerprint

__all__ = [
    # Parser
    "parse",
    "parse_option",
    "parse_options",
    "describe_unparsed",
    # Generator
    "generate_valid_loadouts",
    "build_weapon_eligibility",
    "parse_default_loadout",
    "LoadoutCache",
    "unit_fingerprint",
    # Validator
    "validate_loadout",
    "validate_unit",
    # Models
    "DatasheetOption",
    "CompositionEntry",
    "WeaponEntry",
    "UnitWargear",
    "ParsedWargearOption",
    "TargetingDef",
    "ActionDef",
    "OptionConstraints",
    "WeaponRef",
    "WeaponChoice",
    "ValidLoadoutGroup",
    "WeaponEligibility",
    "EligibilityClause",
    "GenerationResult",
    "GenerationReport",
    "ModelInstance",
    "LoadoutValidationResult",
    "UnitLoadoutValidation",
    "ANY_MODEL",
    "UNIT_WIDE",
    "UNKNOWN",
]
