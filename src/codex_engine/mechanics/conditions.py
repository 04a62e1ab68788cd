"""
Condition evaluation against combat state.

Entities are resolved from the evaluating side's point of view: ``this*``
entities are the side that owns the mechanic, ``opposing*``/``target*`` the
other side. Army-level entities resolve to the same side's facts.
"""

from typing import Any

from pydantic import BaseModel, Field

from .models import OWN_ENTITIES, Condition, Entity, Mechanic, Operator, Role


class EntityFacts(BaseModel):
    """What condition checks can observe about one side of a combat.

    Attributes:
        states: Combat states such as "isStationary", "inHalfRange", "inCover"
        keywords: Unit keywords, uppercase
        abilities: Ability names, uppercase
        attributes: Characteristics by short code ("t", "sv", "s", "ap", ...)
    """

    states: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    abilities: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)

    def has_state(self, state: str) -> bool:
        return state.lower() in {s.lower() for s in self.states}

    def has_any_keyword(self, keywords: list[str]) -> bool:
        own = {k.upper() for k in self.keywords}
        return any(k.upper() in own for k in keywords)

    def has_any_ability(self, abilities: list[str]) -> bool:
        own = {a.upper() for a in self.abilities}
        return any(a.upper() in own for a in abilities)


class CombatSituation(BaseModel):
    attacker: EntityFacts = Field(default_factory=EntityFacts)
    defender: EntityFacts = Field(default_factory=EntityFacts)

    def facts_for(self, entity: Entity, perspective: Role) -> EntityFacts:
        own_side = entity in OWN_ENTITIES
        if (perspective == "attacker") == own_side:
            return self.attacker
        return self.defender


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def compare_values(actual: Any, operator: Operator, expected: Any) -> bool:
    """Compare an observed value with a condition's expected value.

    Ordering operators only hold between two numbers. ``includes`` tests list
    membership or substring, falling back to equality.
    """
    if actual is None:
        if operator == "equals":
            return expected is None
        if operator == "notEquals":
            return expected is not None
        return False

    if operator == "equals":
        return actual == expected
    if operator == "notEquals":
        return actual != expected
    if operator in ("greaterThan", "greaterThanOrEqualTo", "lessThan", "lessThanOrEqualTo"):
        if not (_is_number(actual) and _is_number(expected)):
            return False
        if operator == "greaterThan":
            return actual > expected
        if operator == "greaterThanOrEqualTo":
            return actual >= expected
        if operator == "lessThan":
            return actual < expected
        return actual <= expected
    if operator in ("includes", "notIncludes"):
        if isinstance(actual, (list, tuple, set)):
            found = expected in actual
        elif isinstance(actual, str) and isinstance(expected, str):
            found = expected in actual
        else:
            found = actual == expected
        return found if operator == "includes" else not found
    return False


def _presence(found: bool, operator: Operator) -> bool:
    if operator in ("notEquals", "notIncludes"):
        return not found
    return found


def evaluate_condition(condition: Condition, situation: CombatSituation, perspective: Role) -> bool:
    """Whether one condition holds for a mechanic owned by ``perspective``.

    The first populated check decides: state, then keywords, then abilities,
    then attribute. A condition with no check always holds.
    """
    facts = situation.facts_for(condition.entity, perspective)
    operator = condition.operator

    if condition.state:
        return compare_values(facts.has_state(condition.state), operator, condition.value)
    if condition.keywords:
        return _presence(facts.has_any_keyword(condition.keywords), operator)
    if condition.abilities:
        return _presence(facts.has_any_ability(condition.abilities), operator)
    if condition.attribute:
        return compare_values(facts.attributes.get(condition.attribute), operator, condition.value)
    return True


def evaluate_mechanic(mechanic: Mechanic, situation: CombatSituation, perspective: Role) -> bool:
    """All of a mechanic's conditions hold (a mechanic without conditions always applies)."""
    return all(evaluate_condition(c, situation, perspective) for c in mechanic.conditions)


def describe_condition(condition: Condition) -> str:
    if condition.state:
        return f"{condition.entity} {condition.operator} state {condition.state}={condition.value}"
    if condition.keywords:
        return f"{condition.entity} {condition.operator} keywords {', '.join(condition.keywords)}"
    if condition.abilities:
        return f"{condition.entity} {condition.operator} abilities {', '.join(condition.abilities)}"
    if condition.attribute:
        return f"{condition.entity} {condition.attribute} {condition.operator} {condition.value}"
    return f"{condition.entity} (no check)"


def explain_mechanic(mechanic: Mechanic, situation: CombatSituation, perspective: Role) -> tuple[bool, str]:
    """Evaluate a mechanic and say which condition, if any, failed.

    Returns:
        (applies, reason)
    """
    if not mechanic.conditions:
        return True, "No conditions"
    for index, condition in enumerate(mechanic.conditions, start=1):
        if not evaluate_condition(condition, situation, perspective):
            return False, f"Condition {index} failed: {describe_condition(condition)}"
    return True, "All conditions met"
