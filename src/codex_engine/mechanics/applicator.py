"""
Effect applicator.

Folds the mechanics of both combatants, the attacking weapon's rules and any
situational mechanics into the final numbers of one attack: the hit, wound
and save targets with their modifiers, re-rolls and auto-successes.

Resolution order:
    1. Conditions gate every mechanic; conditional mechanics unwrap into
       their children when their own conditions hold.
    2. Keywords, abilities, static numbers and characteristic bonuses.
    3. Roll modifiers pooled per roll and capped.
    4. Ignores applied to the capped result.
    5. Re-rolls (ones < failed < all) and auto-successes.

Hit and wound rolls belong to the attacker, saves to the defender. A
mechanic changes a roll when its owner makes the roll and the mechanic
targets its own side, or when its owner is the other combatant and the
mechanic targets the opposing side.
"""

import logging

from pydantic import BaseModel, Field

from ..config import EngineConfig
from .capper import cap_modifiers
from .collector import AbilityCollector
from .conditions import CombatSituation, EntityFacts, evaluate_mechanic
from .models import (
    ArmyContext,
    Mechanic,
    MechanicSource,
    MechanicSourceType,
    ResolvedRollParameters,
    Role,
    RollAttribute,
    RollModifier,
    RollResolution,
    TargetProfile,
    WeaponProfile,
)
from .registry import parse_parameter_value
from .weapon_attributes import weapon_attribute_mechanics

logger = logging.getLogger("codex-engine.mechanics")

ROLL_OWNER: dict[RollAttribute, Role] = {
    RollAttribute.HIT: "attacker",
    RollAttribute.WOUND: "attacker",
    RollAttribute.SAVE: "defender",
}

# Profile-changing kinds, applied in this order before any roll is resolved
PROFILE_ORDER = {
    "adds-keyword": 1,
    "adds-ability": 2,
    "static-number": 3,
    "characteristic-bonus": 4,
}

REROLL_RANK = {"none": 0, "ones": 1, "failed": 2, "all": 3}

WEAPON_FIELDS = {
    "a": "attacks",
    "bs": "skill",
    "ws": "skill",
    "bsws": "skill",
    "s": "strength",
    "ap": "ap",
    "d": "damage",
    "range": "range",
}

TARGET_FIELDS = {
    "t": "toughness",
    "sv": "save",
    "invsv": "invulnerable_save",
    "w": "wounds",
}

# Characteristics that may hold dice expressions such as "D6+1"
DICE_FIELDS = {"attacks", "damage", "range"}

UNSOURCED = MechanicSource(type=MechanicSourceType.SITUATIONAL, name="Unknown")


class ResolutionRequest(BaseModel):
    """Everything one attack resolution depends on.

    Attributes:
        attacker_army: Ability references of the attacking unit
        defender_army: Ability references of the target unit
        weapon: The attacking weapon; its rules become attacker mechanics
        target: The defending model's profile
        situational: Extra mechanics owned by the attacker (terrain, auras)
        situation: Observable combat state used by conditions
    """

    attacker_army: ArmyContext = Field(default_factory=ArmyContext)
    defender_army: ArmyContext = Field(default_factory=ArmyContext)
    weapon: WeaponProfile
    target: TargetProfile
    situational: list[Mechanic] = Field(default_factory=list)
    situation: CombatSituation = Field(default_factory=CombatSituation)


# ---------------------------------------------------------------------------
# Roll target calculators
# ---------------------------------------------------------------------------

def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def base_wound_target(strength: int, toughness: int) -> int:
    """Unmodified wound roll needed for strength against toughness."""
    if strength >= 2 * toughness:
        return 2
    if strength > toughness:
        return 3
    if strength == toughness:
        return 4
    if 2 * strength <= toughness:
        return 6
    return 5


def hit_target(skill: int, net_modifier: int, critical: int = 6) -> int:
    return min(_clamp(skill - net_modifier, 2, 6), critical)


def wound_target(strength: int, toughness: int, net_modifier: int, critical: int = 6) -> int:
    """Wound target after modifiers; a critical threshold below it wins (ANTI-X)."""
    return min(_clamp(base_wound_target(strength, toughness) - net_modifier, 2, 6), critical)


def save_target(
    save: int,
    ap: int,
    net_modifier: int,
    invulnerable: int | None = None,
    in_cover: bool = False,
) -> tuple[int, bool, bool]:
    """Save target for a defender.

    Armour saves worsen by the weapon's AP and improve by one in cover, except
    for 3+ or better saves against AP 0. The invulnerable save ignores AP and
    is used when it beats the modified armour save.

    Returns:
        (target, invulnerable_used, cover_applied); 7 means no save possible
    """
    cover = in_cover and not (save <= 3 and ap == 0)
    armour = save + abs(ap) - (1 if cover else 0)
    armour = _clamp(armour - net_modifier, 2, 7)
    if invulnerable is not None and invulnerable < armour:
        return invulnerable, True, False
    return armour, False, cover


# ---------------------------------------------------------------------------
# Applicator
# ---------------------------------------------------------------------------

def _other(role: Role) -> Role:
    return "defender" if role == "attacker" else "attacker"


def _recipient(mechanic: Mechanic, owner: Role) -> Role:
    return owner if mechanic.targets_own_side else _other(owner)


def _add_unique(bucket: list[str], values: list[str]) -> None:
    for value in values:
        upper = value.upper()
        if upper not in bucket:
            bucket.append(upper)


class EffectApplicator:
    """Resolves the roll parameters of one attack.

    Holds no state between calls; the same request always resolves to the
    same parameters.

    Example:
        >>> applicator = EffectApplicator(AbilityCollector(core_registry))
        >>> applicator.resolve(request).hit.target
        3
    """

    def __init__(self, collector: AbilityCollector | None = None, config: EngineConfig | None = None) -> None:
        self.collector = collector or AbilityCollector()
        self.config = config or EngineConfig()

    def resolve(self, request: ResolutionRequest) -> ResolvedRollParameters:
        attacker = self.collector.collect_with_diagnostics(request.attacker_army, "attacker")
        defender = self.collector.collect_with_diagnostics(request.defender_army, "defender")
        weapon_mechanics, special_effects = weapon_attribute_mechanics(request.weapon.attributes, request.weapon.name)

        owned: list[tuple[Mechanic, Role]] = [
            *((m, "attacker") for m in attacker.mechanics),
            *((m, "attacker") for m in weapon_mechanics),
            *((m, "attacker") for m in request.situational),
            *((m, "defender") for m in defender.mechanics),
        ]
        situation = self._observe(request)

        applied: list[Mechanic] = []
        not_applied: list[Mechanic] = []
        active: list[tuple[Mechanic, Role]] = []
        for mechanic, owner in owned:
            self._gate(mechanic, owner, situation, active, applied, not_applied)

        weapon = request.weapon.model_copy(deep=True)
        target = request.target.model_copy(deep=True)
        added_keywords: dict[str, list[str]] = {"attacker": [], "defender": []}
        added_abilities: dict[str, list[str]] = {"attacker": [], "defender": []}
        feel_no_pain: int | None = None

        profile = [(m, o) for m, o in active if m.kind in PROFILE_ORDER]
        profile.sort(key=lambda pair: PROFILE_ORDER[pair[0].kind])
        for mechanic, owner in profile:
            recipient = _recipient(mechanic, owner)
            if mechanic.kind == "adds-keyword":
                _add_unique(added_keywords[recipient], mechanic.keywords)
            elif mechanic.kind == "adds-ability":
                _add_unique(added_abilities[recipient], mechanic.abilities)
                is_fnp = any("FEEL NO PAIN" in a.upper() for a in mechanic.abilities)
                if recipient == "defender" and is_fnp and isinstance(mechanic.value, int):
                    feel_no_pain = mechanic.value if feel_no_pain is None else min(feel_no_pain, mechanic.value)
            else:
                self._change_profile(mechanic, recipient, weapon, target)

        rolls = {
            attribute: self._resolve_roll(attribute, active)
            for attribute in (RollAttribute.HIT, RollAttribute.WOUND, RollAttribute.SAVE)
        }
        hit, wound, save = rolls[RollAttribute.HIT], rolls[RollAttribute.WOUND], rolls[RollAttribute.SAVE]

        hit["target"] = 0 if hit["auto_success"] else hit_target(weapon.skill, hit["net_modifier"], hit["critical_threshold"])
        wound["target"] = 0 if wound["auto_success"] else wound_target(
            weapon.strength, target.toughness, wound["net_modifier"], wound["critical_threshold"]
        )
        ignore_cover = save.pop("ignore_cover")
        hit.pop("ignore_cover")
        wound.pop("ignore_cover")
        if save["auto_success"]:
            save["target"] = 0
        else:
            in_cover = situation.defender.has_state("inCover") and not ignore_cover
            save["target"], save["invulnerable_used"], save["cover_applied"] = save_target(
                target.save, weapon.ap, save["net_modifier"], target.invulnerable_save, in_cover
            )

        missing = [*attacker.missing_references, *defender.missing_references]
        logger.debug(
            f"Resolved {weapon.name} vs {target.name or 'target'}: hit {hit['target']}+, "
            f"wound {wound['target']}+, save {save['target']}+ ({len(applied)} applied, {len(not_applied)} gated)"
        )
        return ResolvedRollParameters(
            hit=RollResolution(**hit),
            wound=RollResolution(**wound),
            save=RollResolution(**save),
            weapon=weapon,
            target=target,
            feel_no_pain=feel_no_pain,
            added_keywords=added_keywords,
            added_abilities=added_abilities,
            special_effects=special_effects,
            applied=applied,
            not_applied=not_applied,
            missing_references=missing,
        )

    # -- stages -------------------------------------------------------------

    @staticmethod
    def _observe(request: ResolutionRequest) -> CombatSituation:
        """Situation with the profiles' characteristics and keywords added."""
        base = request.situation
        weapon, target = request.weapon, request.target
        attacker = EntityFacts(
            states=list(base.attacker.states),
            keywords=list(base.attacker.keywords),
            abilities=list(base.attacker.abilities),
            attributes={
                "a": weapon.attacks, "bs": weapon.skill, "s": weapon.strength,
                "ap": weapon.ap, "d": weapon.damage, **base.attacker.attributes,
            },
        )
        defender = EntityFacts(
            states=list(base.defender.states),
            keywords=[*base.defender.keywords, *target.keywords],
            abilities=list(base.defender.abilities),
            attributes={
                "t": target.toughness, "sv": target.save, "invsv": target.invulnerable_save,
                "w": target.wounds, **base.defender.attributes,
            },
        )
        return CombatSituation(attacker=attacker, defender=defender)

    def _gate(
        self,
        mechanic: Mechanic,
        owner: Role,
        situation: CombatSituation,
        active: list[tuple[Mechanic, Role]],
        applied: list[Mechanic],
        not_applied: list[Mechanic],
    ) -> None:
        if not evaluate_mechanic(mechanic, situation, owner):
            not_applied.append(mechanic)
            return
        applied.append(mechanic)
        if mechanic.kind != "conditional":
            active.append((mechanic, owner))
            return
        for child in mechanic.mechanics:
            if child.source is None and mechanic.source is not None:
                child = child.with_source(mechanic.source)
            self._gate(child, owner, situation, active, applied, not_applied)

    @staticmethod
    def _change_profile(mechanic: Mechanic, recipient: Role, weapon: WeaponProfile, target: TargetProfile) -> None:
        code = mechanic.characteristic.lower()
        if recipient == "attacker" and code in WEAPON_FIELDS:
            profile, field = weapon, WEAPON_FIELDS[code]
        elif recipient == "defender" and code in TARGET_FIELDS:
            profile, field = target, TARGET_FIELDS[code]
        else:
            logger.debug(f"No {recipient} characteristic {mechanic.characteristic!r}; skipping {mechanic.kind}")
            return

        current = getattr(profile, field)
        if mechanic.kind == "static-number":
            value = parse_parameter_value(mechanic.value)
            if field not in DICE_FIELDS and not isinstance(value, int):
                logger.debug(f"Static value {mechanic.value!r} is not a number for {field}; skipping")
                return
        elif isinstance(current, int):
            value = current + mechanic.value
        elif isinstance(current, str):
            # Dice expressions keep the bonus as text: "D6" + 2 -> "D6+2"
            value = f"{current}+{mechanic.value}"
        else:
            return
        setattr(profile, field, value)

    def _affects_roll(self, mechanic: Mechanic, owner: Role, attribute: RollAttribute) -> bool:
        if getattr(mechanic, "attribute", None) != attribute:
            return False
        roller = ROLL_OWNER[attribute]
        if owner == roller:
            return mechanic.targets_own_side
        return not mechanic.targets_own_side

    def _resolve_roll(self, attribute: RollAttribute, active: list[tuple[Mechanic, Role]]) -> dict:
        relevant = [m for m, owner in active if self._affects_roll(m, owner, attribute)]

        modifiers = [
            RollModifier(value=m.value, source=m.source or UNSOURCED)
            for m in relevant if m.kind == "modifier"
        ]
        capped = cap_modifiers(modifiers, attribute, self.config)

        ignores = [m for m in relevant if m.kind == "ignore"]
        ignore_cover = any(m.scope == "cover" for m in ignores)
        scopes = {m.scope for m in ignores} - {"cover"}
        ignored = [m for m in capped.modifiers if self._is_ignored(m, scopes)]
        if ignored:
            kept = [m for m in capped.modifiers if not self._is_ignored(m, scopes)]
            net = cap_modifiers(kept, attribute, self.config).net_value
        else:
            net = capped.net_value

        reroll = "none"
        for m in relevant:
            if m.kind == "reroll" and REROLL_RANK[m.scope] > REROLL_RANK[reroll]:
                reroll = m.scope

        thresholds = [m.value for m in relevant if m.kind == "critical-threshold"]
        return {
            "attribute": attribute,
            "net_modifier": net,
            "modifiers": capped,
            "ignored": ignored,
            "reroll": reroll,
            "auto_success": any(m.kind == "auto-success" for m in relevant),
            "critical_threshold": min(thresholds, default=6),
            "ignore_cover": ignore_cover,
        }

    @staticmethod
    def _is_ignored(modifier: RollModifier, scopes: set[str]) -> bool:
        if "all" in scopes:
            return True
        if "penalties" in scopes and modifier.value < 0:
            return True
        return "bonuses" in scopes and modifier.value > 0


def resolve_attack(request: ResolutionRequest, collector: AbilityCollector | None = None,
                   config: EngineConfig | None = None) -> ResolvedRollParameters:
    """One-shot resolution with a fresh applicator."""
    return EffectApplicator(collector, config).resolve(request)
