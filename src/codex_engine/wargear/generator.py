"""
Weapon eligibility and valid-loadout generation.

Given a unit's parsed wargear options, enumerate every legal loadout per model
type by applying replace and equip actions to the unit's default loadout, then
group the results for the loadout validator.

Enumeration is iterative and bounded: each option widens the current loadout
list by at most ``EngineConfig.max_branching`` variants per loadout, and the
list may never exceed ``EngineConfig.max_loadouts_per_model_type``. An option
that would break either bound is logged and left out, like an unparsed one.
"""

import logging
import math
import re
from itertools import combinations

from ..config import EngineConfig
from ..exceptions import BranchingLimitError
from .models import (
    ANY_MODEL,
    UNIT_WIDE,
    CompositionEntry,
    DefaultLoadout,
    EligibilityClause,
    EquippedCondition,
    GenerationReport,
    GenerationResult,
    GroupTargeting,
    ParsedWargearOption,
    TargetingDef,
    UnitWargear,
    ValidLoadoutGroup,
    WeaponChoice,
    WeaponEligibility,
)
from .parser import parse_options

logger = logging.getLogger("codex-engine.wargear")

Loadout = tuple[str, ...]

# Targeting types that name the model they apply to
MODEL_NAMED_TARGETING = ("specific-model", "each-model-type", "n-model-specific")
RATIO_TARGETING = ("ratio", "ratio-capped")


# ---------------------------------------------------------------------------
# Names and ids
# ---------------------------------------------------------------------------

def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.lower().strip())


def strip_html(text: str) -> str:
    return re.sub(r"<[^>]*>", "", text).strip()


def clean_model_type(description: str) -> str:
    """Model-type name from a composition line.

    Example:
        >>> clean_model_type("4-9 Terminators")
        'Terminator'
    """
    name = re.sub(r"^\d+[-\s]*\d*\s*", "", description).strip()
    return re.sub(r"s$", "", name).strip()


def _same_model_type(a: str, b: str) -> bool:
    """Case-insensitive equality allowing a trailing plural 's'."""
    a, b = a.lower().strip(), b.lower().strip()
    return a == b or a == b + "s" or a + "s" == b


class ItemResolver:
    """Resolves item names from option text to loadout item ids for one unit.

    Weapons resolve to their catalog id, wargear abilities to
    ``wargear-ability:<slug>``, and anything else to ``<datasheet_id>:<slug>``.
    """

    def __init__(self, unit: UnitWargear) -> None:
        self.datasheet_id = unit.datasheet_id
        self._weapons = {weapon.name.lower().strip(): weapon.id for weapon in unit.weapons}
        self._abilities = {name.lower().strip() for name in unit.wargear_abilities}

    def resolve(self, name: str) -> str:
        normalized = name.lower().strip()
        if normalized in self._weapons:
            return self._weapons[normalized]
        if normalized in self._abilities:
            return f"wargear-ability:{slugify(normalized)}"
        return f"{self.datasheet_id}:{slugify(name)}"

    def resolve_choice(self, choice: WeaponChoice) -> list[str]:
        return [self.resolve(ref.name) for ref in choice.weapons]


# ---------------------------------------------------------------------------
# Default loadout and roster
# ---------------------------------------------------------------------------

_MODEL_DEFAULT = re.compile(
    r"(?:The\s+|Every\s+)?(\w[\w\s]+?)\s+(?:model\s+)?is equipped with:\s*([^.]+)", re.I
)
_GENERIC_DEFAULT = re.compile(r"equipped with:\s*([^.]+)", re.I)


def _split_items(text: str) -> list[str]:
    items = (re.sub(r"^\d+\s+", "", part.strip()) for part in re.split(r"[;,]", text))
    return [item for item in items if item]


def parse_default_loadout(text: str, composition: list[CompositionEntry] | None = None) -> list[DefaultLoadout]:
    """Read per-model-type default items from default-loadout text.

    Recognizes "The Sergeant is equipped with: bolt pistol; chainsword." and
    "Every Intercessor model is equipped with: ...". Text without a named model
    falls back to the first composition model type, or ``any``.

    Args:
        text: Raw default-loadout text, possibly containing HTML
        composition: The unit's roster lines

    Returns:
        DefaultLoadout entries in text order; empty when nothing is listed
    """
    if not text:
        return []
    plain = strip_html(text)

    loadouts = []
    for match in _MODEL_DEFAULT.finditer(plain):
        items = _split_items(match.group(2))
        if items:
            loadouts.append(DefaultLoadout(model_type=match.group(1).strip(), items=items))
    if loadouts:
        return loadouts

    generic = _GENERIC_DEFAULT.search(plain)
    if generic:
        items = _split_items(generic.group(1))
        model_type = clean_model_type(strip_html(composition[0].description)) if composition else ANY_MODEL
        if items:
            loadouts.append(DefaultLoadout(model_type=model_type, items=items))
    return loadouts


def get_model_types(composition: list[CompositionEntry]) -> list[str]:
    """Distinct model types of a unit, in roster order; ``any`` if unknown."""
    if not composition:
        return [ANY_MODEL]
    types: list[str] = []
    for entry in composition:
        model_type = clean_model_type(strip_html(entry.description))
        if model_type not in types:
            types.append(model_type)
    return types


def _default_for(model_type: str, defaults: list[DefaultLoadout]) -> DefaultLoadout | None:
    wanted = model_type.lower()
    for default in defaults:
        listed = default.model_type.lower()
        if _same_model_type(listed, wanted) or listed in wanted or wanted in listed:
            return default
    return defaults[0] if defaults else None


# ---------------------------------------------------------------------------
# Targeting
# ---------------------------------------------------------------------------

def targeting_applies_to_model(targeting: TargetingDef, model_type: str) -> bool:
    """Whether an option's targeting reaches models of ``model_type``.

    Named-model targeting accepts plural forms and substring matches
    ("Sergeant" reaches "Terminator Sergeant"); ratio targeting with a model
    type only accepts exact or plural matches; everything else applies to
    every model.
    """
    if targeting.type in MODEL_NAMED_TARGETING:
        if not targeting.model_type:
            return False
        target, current = targeting.model_type.lower().strip(), model_type.lower().strip()
        return _same_model_type(target, current) or target in current or current in target
    if targeting.type in RATIO_TARGETING and targeting.model_type:
        return _same_model_type(targeting.model_type, model_type)
    return True


def condition_met(condition: EquippedCondition | None, loadout: Loadout, resolver: ItemResolver) -> bool:
    """Whether a loadout satisfies an 'if equipped with' gate."""
    if condition is None:
        return True
    for name in condition.required_names():
        cleaned = re.sub(r"^(?:a|an)\s+", "", name, flags=re.I).strip()
        if resolver.resolve(cleaned) not in loadout:
            return False
    return True


def group_targeting(model_type: str, parsed: list[ParsedWargearOption]) -> GroupTargeting | None:
    """How many models of ``model_type`` may take a non-default loadout."""
    for option in parsed:
        if not option.wargear_parsed:
            continue
        targeting = option.targeting
        if not targeting_applies_to_model(targeting, model_type):
            continue
        if targeting.type in RATIO_TARGETING:
            return GroupTargeting(
                type="ratio",
                ratio=targeting.ratio,
                count=targeting.count or 1,
                max_per_ratio=targeting.max_per_ratio,
            )
        if targeting.type == "up-to-n":
            return GroupTargeting(type="up-to-n", max=targeting.max_total)
        if targeting.type == "n-model-specific":
            return GroupTargeting(type="n-model-specific", count=targeting.count)
    return None


# ---------------------------------------------------------------------------
# Bounded expansion
# ---------------------------------------------------------------------------

def _normalize(items) -> Loadout:
    return tuple(sorted(items))


def _with_items(loadout: Loadout, removed: set[str], added: list[str]) -> Loadout:
    kept = [item for item in loadout if item not in removed]
    for item in added:
        if item not in kept:
            kept.append(item)
    return _normalize(kept)


def _selections(option: ParsedWargearOption, config: EngineConfig) -> list[list[WeaponChoice]]:
    """Choice combinations one add option offers, excluding 'take nothing'."""
    choices = option.action.adds
    limit = option.action.max_selections or 1
    if limit <= 1:
        return [[choice] for choice in choices]

    if limit > config.max_enumerated_count:
        raise BranchingLimitError(
            f"'up to {limit}' exceeds the enumerable count",
            limit=config.max_enumerated_count,
            attempted=limit,
            option_line=option.line,
        )
    limit = min(limit, len(choices))
    attempted = sum(math.comb(len(choices), size) for size in range(1, limit + 1))
    if attempted > config.max_branching:
        raise BranchingLimitError(
            f"{attempted} selections exceed the branching limit",
            limit=config.max_branching,
            attempted=attempted,
            option_line=option.line,
        )
    return [list(subset) for size in range(1, limit + 1) for subset in combinations(choices, size)]


def _branches(loadout: Loadout, option: ParsedWargearOption, resolver: ItemResolver,
              config: EngineConfig) -> list[Loadout]:
    """Every loadout reachable from ``loadout`` through one option, itself first."""
    targeting, action = option.targeting, option.action
    if targeting.type == "conditional" and not condition_met(targeting.condition, loadout, resolver):
        return [loadout]

    if action.type == "replace":
        removed = {resolver.resolve(ref.name) for ref in action.removes}
        if not removed.issubset(loadout):
            return [loadout]
        variants = [_with_items(loadout, removed, resolver.resolve_choice(choice)) for choice in action.adds]
    else:
        variants = [
            _with_items(loadout, set(), [item for choice in selection for item in resolver.resolve_choice(choice)])
            for selection in _selections(option, config)
        ]

    if len(variants) > config.max_branching:
        raise BranchingLimitError(
            f"{len(variants)} variants exceed the branching limit",
            limit=config.max_branching,
            attempted=len(variants),
            option_line=option.line,
        )
    return [loadout, *variants]


def _dedupe(loadouts: list[Loadout]) -> list[Loadout]:
    return list(dict.fromkeys(loadouts))


def expand_loadouts(base: Loadout, options: list[ParsedWargearOption], resolver: ItemResolver,
                    config: EngineConfig, skipped: set[int] | None = None) -> list[Loadout]:
    """Apply ``options`` in order to ``base``, one bounded step per option.

    Args:
        base: Starting loadout
        options: Options already known to apply to the model being expanded
        resolver: Name to id resolution for the unit
        config: Branching bounds
        skipped: Collects the lines of options dropped for exceeding a bound

    Returns:
        Unique sorted loadouts in first-reached order, ``base`` first
    """
    loadouts = [_normalize(base)]
    for option in options:
        try:
            widened: list[Loadout] = []
            for loadout in loadouts:
                widened.extend(_branches(loadout, option, resolver, config))
            widened = _dedupe(widened)
            if len(widened) > config.max_loadouts_per_model_type:
                raise BranchingLimitError(
                    f"{len(widened)} loadouts exceed the per-model-type limit",
                    limit=config.max_loadouts_per_model_type,
                    attempted=len(widened),
                    option_line=option.line,
                )
        except BranchingLimitError as e:
            logger.warning(f"Skipping wargear option on line {option.line}: {e.message}")
            if skipped is not None:
                skipped.add(option.line)
            continue
        loadouts = widened
    return loadouts


def apply_constraints(loadouts: list[Loadout], parsed: list[ParsedWargearOption],
                      resolver: ItemResolver) -> list[Loadout]:
    """Drop loadouts that break mutually-exclusive pairs or item count limits."""
    exclusive = [
        (resolver.resolve(a), resolver.resolve(b))
        for option in parsed for a, b in option.constraints.mutually_exclusive
    ]
    limits = [
        (resolver.resolve(limit.weapon), limit.max)
        for option in parsed for limit in option.constraints.max_weapon_count
    ]

    # Loadouts hold each item id once, so a count limit only removes
    # loadouts when it is 0.
    def allowed(loadout: Loadout) -> bool:
        if any(a in loadout and b in loadout for a, b in exclusive):
            return False
        return all(loadout.count(item) <= most for item, most in limits)

    return [loadout for loadout in loadouts if allowed(loadout)]


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------

def eligibility_clause(targeting: TargetingDef) -> EligibilityClause:
    """The eligibility clause an option's targeting grants to what it adds."""
    model_types = [targeting.model_type] if targeting.model_type else []
    if targeting.type in RATIO_TARGETING:
        return EligibilityClause(
            type="ratio",
            ratio=targeting.ratio,
            count=targeting.count or targeting.max_per_ratio or 1,
            model_types=model_types,
        )
    if model_types and (targeting.type in MODEL_NAMED_TARGETING or targeting.type == "conditional"):
        return EligibilityClause(type="model-type", model_types=model_types)
    return EligibilityClause(type="any")


def _merge_clauses(clauses: list[EligibilityClause]) -> list[EligibilityClause]:
    # Clauses combine with OR, so 'any' subsumes the rest.
    if any(clause.type == "any" for clause in clauses):
        return [EligibilityClause(type="any")]

    merged: list[EligibilityClause] = []
    named: list[str] = []
    for clause in clauses:
        if clause.type == "model-type":
            if not named:
                merged.append(clause)
            named.extend(t for t in clause.model_types if t not in named)
        elif clause not in merged:
            merged.append(clause)
    return [
        clause.model_copy(update={"model_types": named}) if clause.type == "model-type" else clause
        for clause in merged
    ]


def build_weapon_eligibility(parsed: list[ParsedWargearOption], resolver: ItemResolver) -> list[WeaponEligibility]:
    """One WeaponEligibility per distinct added item, in first-mention order."""
    by_item: dict[str, list[EligibilityClause]] = {}
    for option in parsed:
        if not option.is_actionable:
            continue
        clause = eligibility_clause(option.targeting)
        for choice in option.action.adds:
            for item_id in resolver.resolve_choice(choice):
                by_item.setdefault(item_id, []).append(clause)
    return [
        WeaponEligibility(weapon_id=item_id, eligibility=_merge_clauses(clauses))
        for item_id, clauses in by_item.items()
    ]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def has_wargear_options(parsed: list[ParsedWargearOption]) -> bool:
    """Whether any option can change a loadout; 'None' and footnotes cannot."""
    return any(option.is_actionable for option in parsed)


def _group(loadouts_by_type: dict[str, list[Loadout]], targeting_by_type: dict[str, GroupTargeting | None],
           type_count: int) -> list[ValidLoadoutGroup]:
    shared: dict[Loadout, int] = {}
    for loadouts in loadouts_by_type.values():
        for loadout in loadouts:
            shared[loadout] = shared.get(loadout, 0) + 1

    common: list[Loadout] = []
    groups: list[ValidLoadoutGroup] = []
    for model_type, loadouts in loadouts_by_type.items():
        specific = []
        for loadout in loadouts:
            if type_count > 1 and shared[loadout] == type_count:
                if loadout not in common:
                    common.append(loadout)
            else:
                specific.append(loadout)
        if specific:
            groups.append(ValidLoadoutGroup(
                model_type=model_type, items=specific, targeting=targeting_by_type.get(model_type)
            ))

    if common:
        groups.insert(0, ValidLoadoutGroup(model_type=ANY_MODEL, items=common))
    if len(groups) == 1 and groups[0].model_type != ANY_MODEL and groups[0].targeting is None:
        groups[0] = groups[0].model_copy(update={"model_type": ANY_MODEL})
    return groups


def generate_valid_loadouts(
    unit: UnitWargear,
    parsed: list[ParsedWargearOption] | None = None,
    config: EngineConfig | None = None,
) -> GenerationResult:
    """Enumerate the legal loadouts and weapon eligibility of a unit.

    Args:
        unit: The unit's roster, catalog, default loadout and option text
        parsed: Already-parsed options; parsed from ``unit.options`` when omitted
        config: Enumeration bounds; defaults apply when omitted

    Returns:
        GenerationResult with groups (``any`` first, then per model type, then
        the unit-wide ``all`` group), per-item eligibility, and a report of
        the option lines left out

    Example:
        >>> result = generate_valid_loadouts(unit)
        >>> [group.model_type for group in result.groups]
        ['any', 'Sergeant']
    """
    config = config or EngineConfig()
    parsed = parse_options(unit.options) if parsed is None else list(parsed)
    resolver = ItemResolver(unit)
    model_types = get_model_types(unit.unit_composition)

    unparsed = []
    for option in parsed:
        if not option.wargear_parsed:
            logger.debug(
                f"Excluding unclassified option on line {option.line} of {unit.datasheet_id} "
                f"({option.targeting_kind}/{option.action_kind})"
            )
            unparsed.append(option.line)

    report_fields = {"unparsed_lines": unparsed, "model_types": model_types}
    eligibility = build_weapon_eligibility(parsed, resolver)
    if not has_wargear_options(parsed):
        return GenerationResult(
            datasheet_id=unit.datasheet_id, groups=[], eligibility=eligibility,
            report=GenerationReport(**report_fields),
        )

    actionable = [option for option in parsed if option.is_actionable]
    per_model = [option for option in actionable if not _is_unit_wide(option)]
    unit_wide = [option for option in actionable if _is_unit_wide(option)]

    skipped: set[int] = set()
    defaults = parse_default_loadout(unit.default_loadout, unit.unit_composition)
    loadouts_by_type: dict[str, list[Loadout]] = {}
    targeting_by_type: dict[str, GroupTargeting | None] = {}
    for model_type in model_types:
        default = _default_for(model_type, defaults)
        if default is None:
            logger.debug(f"No default loadout for {model_type} in {unit.datasheet_id}")
            continue
        base = tuple(resolver.resolve(name) for name in default.items)
        applicable = [o for o in per_model if targeting_applies_to_model(o.targeting, model_type)]
        loadouts = expand_loadouts(base, applicable, resolver, config, skipped)
        loadouts_by_type[model_type] = apply_constraints(loadouts, parsed, resolver)
        targeting_by_type[model_type] = group_targeting(model_type, parsed)

    groups = _group(loadouts_by_type, targeting_by_type, len(model_types))
    if unit_wide:
        wargear = expand_loadouts((), unit_wide, resolver, config, skipped)
        groups.append(ValidLoadoutGroup(model_type=UNIT_WIDE, items=wargear))

    return GenerationResult(
        datasheet_id=unit.datasheet_id,
        groups=groups,
        eligibility=eligibility,
        report=GenerationReport(skipped_lines=sorted(skipped), **report_fields),
    )


def _is_unit_wide(option: ParsedWargearOption) -> bool:
    return option.targeting.type == "this-unit" and option.action.type == "add"
