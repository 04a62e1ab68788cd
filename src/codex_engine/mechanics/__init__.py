"""
Combat mechanics for codex-engine.

This module provides:
- The Mechanic model: tagged rule effects with conditions and provenance
- Read-only core and faction ability registries (YAML/JSON)
- AbilityCollector for turning ability references into mechanics
- The modifier capping law
- EffectApplicator for the final hit, wound and save parameters of an attack
"""

from .models import (
    # Mechanics
    Mechanic,
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
    MECHANIC_ADAPTER,
    Condition,
    MechanicSource,
    MechanicSourceType,
    RollAttribute,
    # Modifiers
    RollModifier,
    CappedModifierResult,
    ModifierBreakdown,
    # Abilities
    CoreAbility,
    CoreAbilityRef,
    FactionAbility,
    Ability,
    ActiveStratagem,
    ArmyContext,
    CollectedMechanics,
    # Resolution
    WeaponProfile,
    TargetProfile,
    RollResolution,
    ResolvedRollParameters,
    SpecialEffect,
)
from .registry import CoreAbilityRegistry, FactionAbilityRegistry, merge_faction_abilities
from .collector import AbilityCollector
from .capper import cap_modifiers, modifier_breakdown
from .conditions import CombatSituation, EntityFacts, evaluate_condition, evaluate_mechanic
from .applicator import EffectApplicator, ResolutionRequest, resolve_attack

__all__ = [
    # Services
    "AbilityCollector",
    "CoreAbilityRegistry",
    "FactionAbilityRegistry",
    "merge_faction_abilities",
    "cap_modifiers",
    "modifier_breakdown",
    "EffectApplicator",
    "ResolutionRequest",
    "resolve_attack",
    "CombatSituation",
    "EntityFacts",
    "evaluate_condition",
    "evaluate_mechanic",
    # Mechanics
    "Mechanic",
    "ModifierMechanic",
    "RerollMechanic",
    "IgnoreMechanic",
    "AutoSuccessMechanic",
    "CriticalThresholdMechanic",
    "StaticNumberMechanic",
    "CharacteristicBonusMechanic",
    "AddsKeywordMechanic",
    "AddsAbilityMechanic",
    "MortalWoundsMechanic",
    "ConditionalMechanic",
    "MECHANIC_ADAPTER",
    "Condition",
    "MechanicSource",
    "MechanicSourceType",
    "RollAttribute",
    "RollModifier",
    "CappedModifierResult",
    "ModifierBreakdown",
    "CoreAbility",
    "CoreAbilityRef",
    "FactionAbility",
    "Ability",
    "ActiveStratagem",
    "ArmyContext",
    "CollectedMechanics",
    "WeaponProfile",
    "TargetProfile",
    "RollResolution",
    "ResolvedRollParameters",
    "SpecialEffect",
]
