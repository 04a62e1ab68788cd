"""
Ordered pattern tables for classifying wargear option text.

Option text is read along two independent axes, targeting (which models an
option applies to) and action (what it lets them do), plus a set of
constraints that may all co-occur. Each axis is an ordered tuple of
OptionPattern entries evaluated top to bottom; the first entry whose regex
matches classifies the text. Several patterns are textual prefixes of one
another, so the order of each table is part of its contract:

    "if this unit contains between 3 and 5 models"  -> if-unit-size
    "if this unit contains 10 or more models"       -> if-unit-size-threshold
    "... can be replaced with one of the following"  -> replace-with-choice
    "... can be replaced with 1 plasma gun"           -> replace-with-single

Classifiers may raise MalformedNumericTokenError when a count cannot be read;
the parser turns that into an ``unknown`` classification.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from ..exceptions import MalformedNumericTokenError
from .models import (
    ActionDef,
    EquippedCondition,
    MaxWeaponCount,
    TargetingDef,
    WeaponChoice,
    WeaponRef,
)

logger = logging.getLogger("codex-engine.wargear")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

WORD_TO_NUMBER: dict[str, int] = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

NUMBER = r"(\d+|one|two|three|four|five|six|seven|eight|nine|ten)"


def parse_number(token: str) -> int:
    """Read a count written as ASCII digits or as a word from one to ten.

    Args:
        token: The count as it appears in option text

    Returns:
        The integer value; "three" and "3" give the same result

    Raises:
        MalformedNumericTokenError: If the token is neither form
    """
    lowered = token.strip().lower()
    if lowered in WORD_TO_NUMBER:
        return WORD_TO_NUMBER[lowered]
    if lowered and lowered.isascii() and lowered.isdigit():
        return int(lowered)
    raise MalformedNumericTokenError(token)


# ---------------------------------------------------------------------------
# Weapon text helpers
# ---------------------------------------------------------------------------

_QUOTES = str.maketrans({"’": "'", "‘": "'", "“": '"', "”": '"'})


def normalize_quotes(text: str) -> str:
    """Replace typographic quotes with their ASCII forms."""
    return text.translate(_QUOTES)


def clean_weapon_name(name: str) -> str:
    """Strip parenthetical notes, trailing punctuation and a leading count.

    Example:
        >>> clean_weapon_name("2 heavy bolters (see below).")
        'heavy bolters'
    """
    name = re.sub(r"\s*\(.*?\)\s*", " ", name)
    name = re.sub(r"[.,;:*\s]+$", "", name)
    name = re.sub(r"^\s*\d+\s+", "", name)
    return re.sub(r"\s+", " ", name).strip()


def strip_possessive_prefix(text: str) -> str:
    """Drop "This model's", "The Sergeant's", "1 Gunner's" style prefixes."""
    text = re.sub(rf"^for every {NUMBER} models in (?:this|the) unit,?\s+{NUMBER}\s+[\w\s]+?'s\s+", "", text, flags=re.I)
    text = re.sub(r"^this model's\s+", "", text, flags=re.I)
    text = re.sub(r"^the\s+[\w\s]+?'s\s+", "", text, flags=re.I)
    text = re.sub(r"^each\s+[\w\s]+?'s\s+", "", text, flags=re.I)
    return re.sub(rf"^{NUMBER}\s+[\w\s]+?'s\s+", "", text, flags=re.I)


def parse_weapon_ref(text: str) -> WeaponRef | None:
    match = re.match(rf"^(?:{NUMBER}\s+)?(.+)$", text, re.I | re.S)
    if not match:
        return None
    name = clean_weapon_name(match.group(2))
    if not name:
        return None
    count = parse_number(match.group(1)) if match.group(1) else 1
    return WeaponRef(name=name, count=count)


def extract_weapon_refs(text: str) -> list[WeaponRef]:
    """Read the weapons an option removes, e.g. "bolt pistol and boltgun"."""
    refs = []
    for part in re.split(r"\s+and\s+", strip_possessive_prefix(text.strip()), flags=re.I):
        ref = parse_weapon_ref(strip_possessive_prefix(part.strip()))
        if ref:
            refs.append(ref)
    return refs


def _choice_from(count: int, raw_name: str) -> WeaponChoice | None:
    """One list entry; "1 X and 1 Y" inside a single entry is a package."""
    if " and " in raw_name.lower():
        weapons = []
        for index, part in enumerate(re.split(r"\s+and\s+", raw_name, flags=re.I)):
            part = part.strip()
            counted = re.match(rf"^{NUMBER}\s+(.+)$", part, re.I | re.S)
            if counted:
                weapons.append(WeaponRef(name=clean_weapon_name(counted.group(2)), count=parse_number(counted.group(1))))
            elif clean_weapon_name(part):
                weapons.append(WeaponRef(name=clean_weapon_name(part), count=count if index == 0 else 1))
        return WeaponChoice(weapons=weapons, is_package=True) if weapons else None

    name = clean_weapon_name(raw_name)
    if not name:
        return None
    return WeaponChoice(weapons=[WeaponRef(name=name, count=count)])


def extract_weapon_choices(text: str) -> list[WeaponChoice]:
    """Read a choice list from HTML items, "1 X 1 Y" runs, or comma lists."""
    cleaned = (text or "").strip()
    if not cleaned:
        return []

    choices: list[WeaponChoice] = []
    if "<li>" in cleaned.lower():
        for item in re.finditer(r"<li>([^<]+)</li>", cleaned, re.I):
            counted = re.match(rf"^{NUMBER}\s+(.+)$", item.group(1).strip(), re.I | re.S)
            if counted:
                choice = _choice_from(parse_number(counted.group(1)), counted.group(2).strip())
                if choice:
                    choices.append(choice)
        if choices:
            return choices
        cleaned = re.sub(r"<[^>]*>", " ", cleaned).strip()

    for run in re.finditer(r"(\d+)\s+([^0-9]+?)(?=\s+\d+\s+|\s*$)", cleaned):
        choice = _choice_from(parse_number(run.group(1)), run.group(2).strip())
        if choice:
            choices.append(choice)

    if not choices:
        for part in re.split(r"\s*[,;]\s*", cleaned):
            ref = parse_weapon_ref(part.strip()) if part.strip() else None
            if ref:
                choices.append(WeaponChoice(weapons=[ref]))
    return choices


def choice_list_after_colon(text: str) -> str:
    colon = text.find(":")
    if colon == -1:
        following = re.search(r"following[:\s]*(.+)$", text, re.I | re.S)
        return following.group(1) if following else ""
    return text[colon + 1:].strip()


# ---------------------------------------------------------------------------
# Pattern table entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OptionPattern(Generic[T]):
    """A named (predicate, classifier) pair in an ordered pattern table.

    Attributes:
        name: Stable kind reported for text this pattern classifies
        regex: Compiled predicate, applied with ``search``
        classify: Builds the classification from the match and the full text
        required: Lowercase phrase the text must contain before the regex runs
    """
    name: str
    regex: re.Pattern
    classify: Callable[[re.Match, str], T]
    required: str | None = None

    def apply(self, text: str) -> T | None:
        if self.required and self.required not in text.lower():
            return None
        match = self.regex.search(text)
        if match is None:
            return None
        return self.classify(match, text)


def _targeting(name: str, pattern: str, build: Callable[[re.Match], dict] | None = None,
               flags: int = re.I, required: str | None = None) -> OptionPattern[TargetingDef]:
    def classify(match: re.Match, text: str) -> TargetingDef:
        fields = build(match) if build else {}
        fields.setdefault("type", name)
        return TargetingDef(kind=fields.pop("kind", name), **fields)

    return OptionPattern(name, re.compile(pattern, flags), classify, required)


def _equipped_condition(text: str) -> EquippedCondition:
    pair = re.match(r"(.+?)\s+and\s+(.+)", text, re.I)
    if pair:
        return EquippedCondition(weapon_names=[pair.group(1).strip(), pair.group(2).strip()])
    return EquippedCondition(weapon_name=text.strip())


_UNCLASSIFIED = {"kind": "unknown", "type": "unknown"}

TARGETING_PATTERNS: tuple[OptionPattern[TargetingDef], ...] = (
    # "None" and footnotes are never actionable; matching them first keeps
    # "* This model can ..." from reading as this-model.
    _targeting("none", r"^none\.?$", lambda m: dict(_UNCLASSIFIED)),
    _targeting("footnote", r"^\*\s", lambda m: dict(_UNCLASSIFIED)),
    _targeting(
        "if-unit-size",
        rf"^if this unit contains (?:between )?{NUMBER}(?: and {NUMBER})? models",
        lambda m: {"unit_size_threshold": parse_number(m.group(1))},
    ),
    _targeting(
        "if-unit-size-threshold",
        rf"^if this unit contains {NUMBER} or (?:more|fewer) models",
        lambda m: {"type": "if-unit-size", "unit_size_threshold": parse_number(m.group(1))},
    ),
    _targeting(
        "if-model-equipped",
        r"^if this unit'?s?\s+(.+?)\s+is equipped with",
        lambda m: {"type": "conditional", "model_type": m.group(1).strip(), "condition": EquippedCondition()},
    ),
    _targeting(
        "conditional-equipped",
        r"^if (?:this model is )?equipped with (.+?),",
        lambda m: {"type": "conditional", "condition": _equipped_condition(m.group(1))},
    ),
    _targeting("this-unit", r"^this unit can be equipped"),
    _targeting("all-models", r"^all (?:of the )?models in this unit"),
    _targeting(
        "ratio-capped",
        rf"^for every {NUMBER} models in (?:this|the) unit,? (?:.*?)up to {NUMBER}",
        lambda m: {"ratio": parse_number(m.group(1)), "max_per_ratio": parse_number(m.group(2))},
    ),
    _targeting(
        "ratio-with-model-type",
        rf"^for every {NUMBER} models in (?:this|the) unit,?\s+{NUMBER}\s+([\w\s]+?)'s",
        lambda m: {
            "type": "ratio",
            "ratio": parse_number(m.group(1)),
            "count": parse_number(m.group(2)),
            "model_type": m.group(3).strip(),
        },
    ),
    _targeting("ratio", rf"^for every {NUMBER} models", lambda m: {"ratio": parse_number(m.group(1))}),
    _targeting("any-number", r"^any number of (?:models|[\w\s]+)"),
    _targeting("up-to-n", rf"^up to {NUMBER}", lambda m: {"max_total": parse_number(m.group(1))}),
    _targeting("each-model-type", r"^each ([\w\s]+?)(?:'s|\s+can)", lambda m: {"model_type": m.group(1).strip()}),
    _targeting(
        "specific-model-dual",
        r"^the ([\w\s]+?)'s\s+(.+?)\s+and\s+(.+?)\s+can be replaced",
        lambda m: {"type": "specific-model", "model_type": m.group(1).strip()},
        required="can be replaced",
    ),
    _targeting("specific-model", r"^the ([\w\s]+?)(?:'s|\s+can)", lambda m: {"model_type": m.group(1).strip()}),
    _targeting(
        "n-model-specific",
        rf"^{NUMBER}\s+([\w\s]+?)(?:'s|\s+can|\s+(?:model\s+)?(?:already\s+)?equipped)",
        lambda m: {"count": parse_number(m.group(1)), "model_type": m.group(2).strip()},
    ),
    _targeting("this-model", r"^this model(?:'s|\s+can)?"),
)


# Action classifiers ---------------------------------------------------------

def _single(match: re.Match, count_group: int, name_group: int) -> WeaponChoice:
    return WeaponChoice(weapons=[WeaponRef(
        name=clean_weapon_name(match.group(name_group)),
        count=parse_number(match.group(count_group)),
    )])


def _replace_with_choice(match: re.Match, text: str) -> ActionDef:
    choice_text = match.group(2) or choice_list_after_colon(text)
    return ActionDef(
        type="replace",
        removes=extract_weapon_refs(match.group(1)),
        adds=extract_weapon_choices(choice_text),
        is_choice_list=True,
    )


def _equip_with_choice(match: re.Match, text: str) -> ActionDef:
    adds = extract_weapon_choices(match.group(1) or choice_list_after_colon(text))
    return ActionDef(type="add", adds=adds, is_choice_list=True, max_selections=1)


def _equip_up_to(match: re.Match, text: str) -> ActionDef:
    adds = extract_weapon_choices(match.group(2) or choice_list_after_colon(text))
    return ActionDef(type="add", adds=adds, is_choice_list=True, max_selections=parse_number(match.group(1)))


def _equip_with_list(match: re.Match, text: str) -> ActionDef:
    adds = extract_weapon_choices(choice_list_after_colon(text))
    return ActionDef(type="add", adds=adds, is_choice_list=len(adds) > 1)


def _replace_multiple_with(match: re.Match, text: str) -> ActionDef:
    adds = extract_weapon_choices(match.group(3))
    return ActionDef(
        type="replace",
        removes=extract_weapon_refs(match.group(1)) + extract_weapon_refs(match.group(2)),
        adds=adds,
        is_choice_list=len(adds) > 1,
    )


def _replace_with_package(match: re.Match, text: str) -> ActionDef:
    package = WeaponChoice(
        weapons=[
            WeaponRef(name=clean_weapon_name(match.group(3)), count=parse_number(match.group(2))),
            WeaponRef(name=clean_weapon_name(match.group(5)), count=parse_number(match.group(4))),
        ],
        is_package=True,
    )
    return ActionDef(type="replace", removes=extract_weapon_refs(match.group(1)), adds=[package])


def _replace_single(match: re.Match, text: str) -> ActionDef:
    return ActionDef(type="replace", removes=extract_weapon_refs(match.group(1)), adds=[_single(match, 2, 3)])


def _equip_single(match: re.Match, text: str) -> ActionDef:
    return ActionDef(type="add", adds=[_single(match, 1, 2)])


def _have_replaced_with(match: re.Match, text: str) -> ActionDef:
    removes = extract_weapon_refs(match.group(1))
    add_text = match.group(2)
    if "one of the following" in add_text.lower():
        return ActionDef(
            type="replace",
            removes=removes,
            adds=extract_weapon_choices(choice_list_after_colon(text)),
            is_choice_list=True,
        )
    adds = extract_weapon_choices(add_text)
    return ActionDef(type="replace", removes=removes, adds=adds, is_choice_list=len(adds) > 1)


def _action(name: str, pattern: str, classify: Callable[[re.Match, str], ActionDef],
            flags: int = re.I, required: str | None = None) -> OptionPattern[ActionDef]:
    def named(match: re.Match, text: str) -> ActionDef:
        return classify(match, text).model_copy(update={"kind": name})

    return OptionPattern(name, re.compile(pattern, flags), named, required)


_DOTALL = re.I | re.S
_LINES = re.I | re.M
_REPLACED = "can be replaced with"

ACTION_PATTERNS: tuple[OptionPattern[ActionDef], ...] = (
    _action("replace-with-choice", r"^(.+?)\s+can be replaced with one of the following[:\s<]*(.*)$",
            _replace_with_choice, _DOTALL, required=_REPLACED),
    _action("equip-with-choice", r"can be equipped with one of the following[:\s<]*(.*)$",
            _equip_with_choice, _DOTALL),
    _action("equip-up-to", rf"can be equipped with up to {NUMBER} of the following[:\s<]*(.*)$",
            _equip_up_to, _DOTALL),
    _action("equip-with-list", r"can be equipped with[:\s]*<ul>", _equip_with_list, _DOTALL),
    _action("replace-multiple-with", r"^(.+?)\s+and\s+(.+?)\s+can be replaced with[:\s]*(.+)$",
            _replace_multiple_with, _DOTALL, required=_REPLACED),
    _action("replace-with-package",
            rf"^(.+?)\s+can be replaced with\s+{NUMBER}\s+(.+?)\s+and\s+{NUMBER}\s+(.+?)(?:\.|$)",
            _replace_with_package, _LINES, required=_REPLACED),
    _action("replace-with-single", rf"^(.+?)\s+can be replaced with\s+{NUMBER}\s+(.+?)(?:\.|$)", _replace_single,
            _LINES, required=_REPLACED),
    _action("equip-with-single", rf"can be equipped with\s+{NUMBER}\s+(.+?)(?:\s*\(|\.|\*|$)", _equip_single),
    _action("each-equip-with-single", rf"can each be equipped with\s+{NUMBER}\s+(.+?)(?:\s*\(|\.|\*|$)", _equip_single),
    _action("have-replaced-with", r"can (?:each )?have (?:their|its)\s+(.+?)\s+replaced with\s+(.+?)(?:\.|$)",
            _have_replaced_with, _DOTALL),
    _action("have-token", rf"it can have\s+{NUMBER}\s+(.+?)(?:\.|$)", _equip_single),
    _action("each-replace-with-choice", r"can each replace (?:their|its)\s+(.+?)\s+with one of the following[:\s<]*(.*)$",
            _replace_with_choice, _DOTALL),
    _action("each-replace-with-single", rf"can each replace (?:their|its)\s+(.+?)\s+with\s+{NUMBER}\s+(.+?)(?:\.|$)",
            _replace_single),
    _action("replace-with-choice-active", r"can replace (?:its|their)\s+(.+?)\s+with one of the following[:\s<]*(.*)$",
            _replace_with_choice, _DOTALL),
    _action("replace-with-single-active", rf"can replace (?:its|their)\s+(.+?)\s+with\s+{NUMBER}\s+(.+?)(?:\.|$)",
            _replace_single),
)


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------
# Unlike the two classification axes, every constraint pattern is tried and
# all matches accumulate into one OptionConstraints.

RESTRICTED_WEAPON = re.compile(r"\(that model'?s?\s+(.+?)\s+cannot be replaced\)", re.I)
MUTUALLY_EXCLUSIVE = re.compile(r"cannot be equipped with both (?:a |an )?(.+?) and (?:a |an )?(.+?)(?:\.|,|$)", re.I)
MAX_WEAPON_COUNT = re.compile(rf"cannot be equipped with more than {NUMBER} (.+?)(?:\.|,|and|$)", re.I)
EXCLUDED_WEAPONS = re.compile(r"cannot be equipped with (?:a |an )?([^,.]+?)(?: or (?:a |an )?([^,.]+?))?(?:\.|,|$)", re.I)
NO_DUPLICATES = re.compile(r"cannot take duplicates", re.I)
ALLOW_DUPLICATES = re.compile(r"can take duplicates", re.I)
MUST_BE_DIFFERENT = re.compile(r"two different (?:weapons|items)", re.I)
MAX_SELECTIONS = re.compile(rf"up to {NUMBER} of the following", re.I)


def extract_constraints(text: str) -> dict:
    """Collect every constraint written into ``text``.

    Returns:
        Keyword arguments for OptionConstraints; counts that cannot be read
        drop only the constraint they belong to.
    """
    found: dict = {}

    restricted = RESTRICTED_WEAPON.search(text)
    if restricted:
        found["restricted_weapons"] = [restricted.group(1).strip()]

    pairs = [
        (clean_weapon_name(m.group(1)), clean_weapon_name(m.group(2)))
        for m in MUTUALLY_EXCLUSIVE.finditer(text)
    ]
    if pairs:
        found["mutually_exclusive"] = pairs

    limits = []
    for m in MAX_WEAPON_COUNT.finditer(text):
        try:
            limits.append(MaxWeaponCount(weapon=clean_weapon_name(m.group(2)), max=parse_number(m.group(1))))
        except MalformedNumericTokenError as e:
            logger.debug(f"Dropping weapon count limit: {e}")
    if limits:
        found["max_weapon_count"] = limits

    excluded = EXCLUDED_WEAPONS.search(text)
    if excluded and not re.match(r"^(?:both|more than) ", excluded.group(1), re.I):
        names = [clean_weapon_name(excluded.group(1))]
        if excluded.group(2):
            names.append(clean_weapon_name(excluded.group(2)))
        found["excluded_weapons"] = names

    if NO_DUPLICATES.search(text):
        found["no_duplicates"] = True
    if ALLOW_DUPLICATES.search(text):
        found["allow_duplicates"] = True
    if MUST_BE_DIFFERENT.search(text):
        found["must_be_different"] = True

    selections = MAX_SELECTIONS.search(text)
    if selections:
        try:
            found["max_selections"] = parse_number(selections.group(1))
        except MalformedNumericTokenError as e:
            logger.debug(f"Dropping selection limit: {e}")

    return found
