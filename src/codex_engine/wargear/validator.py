"""
Loadout validator.

Checks a model's current loadout against the valid-loadout groups generated
for its unit. A loadout is valid when it equals, ignoring order, one of the
candidate tuples for its model type; otherwise the closest candidate is
reported together with what would have to be added and removed to reach it.
Missing data never blocks the caller: a unit without groups, or a model type
no group covers, is unrestricted.
"""

from typing import Iterable, Sequence

from .models import (
    ANY_MODEL,
    UNIT_WIDE,
    LoadoutValidationResult,
    ModelInstance,
    UnitLoadoutValidation,
    ValidLoadoutGroup,
)


def _unrestricted() -> LoadoutValidationResult:
    return LoadoutValidationResult(is_valid=True)


def model_type_matches_group(model_type: str, group_model_type: str) -> bool:
    """Whether a group's loadouts apply to models of ``model_type``.

    ``any`` groups apply to every model and ``all`` groups to none (they hold
    unit-wide wargear). Otherwise names match case-insensitively, allowing a
    trailing plural 's' on either side.
    """
    if group_model_type == ANY_MODEL:
        return True
    if group_model_type == UNIT_WIDE:
        return False
    model, group = model_type.lower().strip(), group_model_type.lower().strip()
    return model == group or model == group + "s" or group == model + "s"


def candidate_group(model_type: str, groups: Sequence[ValidLoadoutGroup]) -> ValidLoadoutGroup | None:
    """Combine every group that applies to ``model_type`` into one.

    The ``any`` group's tuples come first, followed by those of each matching
    model-specific group in generation order. The combined group is named
    after ``model_type`` when a specific group matched, ``any`` otherwise.

    Returns:
        The combined group, or None when no group offers any tuple
    """
    items: list[tuple[str, ...]] = []
    any_group = next((group for group in groups if group.model_type == ANY_MODEL), None)
    if any_group:
        items.extend(any_group.items)

    specific = False
    for group in groups:
        if group.model_type in (ANY_MODEL, UNIT_WIDE):
            continue
        if model_type_matches_group(model_type, group.model_type):
            items.extend(group.items)
            specific = True

    if not items:
        return None
    return ValidLoadoutGroup(model_type=model_type if specific else ANY_MODEL, items=items)


def find_exact(loadout: Sequence[str], candidates: Iterable[tuple[str, ...]]) -> tuple[str, ...] | None:
    wanted = sorted(loadout)
    for candidate in candidates:
        if sorted(candidate) == wanted:
            return candidate
    return None


def find_closest(loadout: Sequence[str], candidates: Iterable[tuple[str, ...]]):
    """Nearest candidate under score = overlap - (missing + extra).

    Ties go to the earliest candidate.

    Returns:
        (candidate, missing, extra), or None when there are no candidates.
        ``missing`` lists candidate items absent from ``loadout``; ``extra``
        lists loadout items absent from the candidate.
    """
    best = None
    best_score = None
    current = set(loadout)
    for candidate in candidates:
        offered = set(candidate)
        overlap = sum(1 for item in loadout if item in offered)
        missing = [item for item in candidate if item not in current]
        extra = [item for item in loadout if item not in offered]
        score = overlap - (len(missing) + len(extra))
        if best_score is None or score > best_score:
            best_score = score
            best = (candidate, missing, extra)
    return best


def validate_loadout(model_type: str, loadout: Sequence[str],
                     groups: Sequence[ValidLoadoutGroup] | None) -> LoadoutValidationResult:
    """Validate one model's loadout.

    Args:
        model_type: The model's type, e.g. "Terminator Sergeant"
        loadout: Item ids currently assigned to the model, in any order
        groups: Valid-loadout groups generated for the model's unit

    Returns:
        LoadoutValidationResult. ``matched_group`` is the combined candidate
        group for the model type whenever one exists.

    Example:
        >>> group = ValidLoadoutGroup(model_type="any", items=[("a", "b"), ("a", "c")])
        >>> validate_loadout("Trooper", ["b", "a"], [group]).is_valid
        True
    """
    if not groups:
        return _unrestricted()

    group = candidate_group(model_type, groups)
    if group is None:
        return _unrestricted()

    exact = find_exact(loadout, group.items)
    if exact is not None:
        return LoadoutValidationResult(is_valid=True, matched_group=group, closest_match=exact)

    closest = find_closest(loadout, group.items)
    candidate, missing, extra = closest
    return LoadoutValidationResult(
        is_valid=False,
        matched_group=group,
        closest_match=candidate,
        missing_items=missing,
        extra_items=extra,
    )


def validate_unit(instances: Iterable[ModelInstance],
                  groups: Sequence[ValidLoadoutGroup] | None) -> UnitLoadoutValidation:
    """Validate every model of a unit, keyed by instance id."""
    results: dict[str, LoadoutValidationResult] = {}
    for instance in instances:
        results[instance.instance_id] = validate_loadout(instance.model_type, instance.loadout, groups)
    invalid = sum(1 for result in results.values() if not result.is_valid)
    return UnitLoadoutValidation(model_validations=results, has_any_invalid=invalid > 0, invalid_count=invalid)
