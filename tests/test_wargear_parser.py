"""
Tests for the wargear option parser.

Covers:
- Totality and purity of parse() over arbitrary text
- Targeting and action pattern precedence
- Numeric words vs digits, and malformed numeric tokens
- Choice lists, packages and constraints
- Serialization round-trip of ParsedWargearOption
"""

import time

import pytest

from codex_engine.exceptions import MalformedNumericTokenError
from codex_engine.wargear.models import DatasheetOption, ParsedWargearOption
from codex_engine.wargear.parser import (
    classify_action,
    classify_targeting,
    describe_unparsed,
    parse,
    parse_options,
)
from codex_engine.wargear.patterns import (
    ACTION_PATTERNS,
    TARGETING_PATTERNS,
    clean_weapon_name,
    extract_weapon_choices,
    parse_number,
)


# ---------------------------------------------------------------------------
# Totality
# ---------------------------------------------------------------------------

ODD_INPUTS = [
    "",
    "   ",
    "None",
    "none.",
    "* This model cannot be selected as your Warlord.",
    "<ul></ul>",
    "can be replaced with",
    "for every models in this unit",
    "This model can be equipped with one of the following:",
    "up to 99999999999999999999 of the following",
    "\x00\x01\x02",
    "The 's can be replaced with 1 .",
    "x" * 500,
]


class TestParserTotality:
    """parse() returns a value for every input and is deterministic."""

    @pytest.mark.parametrize("text", ODD_INPUTS)
    def test_never_raises(self, text: str) -> None:
        result = parse(text)
        assert isinstance(result, ParsedWargearOption)

    @pytest.mark.parametrize("text", ODD_INPUTS)
    def test_same_text_same_result(self, text: str) -> None:
        assert parse(text) == parse(text)

    def test_unrecognized_text_is_unknown(self) -> None:
        result = parse("This unit's banner is carried with pride.")
        assert result.targeting_kind == "unknown"
        assert result.action_kind == "unknown"
        assert result.wargear_parsed is False
        assert result.is_actionable is False

    def test_none_and_footnotes_count_as_parsed(self) -> None:
        for text in ("None", "* Models with this option lose the SCOUTS ability."):
            result = parse(text)
            assert result.wargear_parsed is True
            assert result.is_actionable is False

    @pytest.mark.parametrize("text", [
        "bolt pistol and " * 400,
        "bolt pistol and " * 400 + "can be replaced",
        "This model's " + "bolt pistol and " * 400 + "boltgun can be replaced with 1 plasma pistol.",
    ])
    def test_long_conjunctions_parse_quickly(self, text: str) -> None:
        started = time.perf_counter()
        parse(text)
        assert time.perf_counter() - started < 1.0

    def test_long_replacement_still_classified(self) -> None:
        text = "This model's " + "bolt pistol and " * 400 + "boltgun can be replaced with 1 plasma pistol."
        result = parse(text)
        assert result.action_kind == "replace-multiple-with"
        assert len(result.action.removes) == 401


# ---------------------------------------------------------------------------
# Targeting
# ---------------------------------------------------------------------------

class TestTargetingPrecedence:
    """The first matching targeting pattern wins."""

    def test_table_order_is_fixed(self) -> None:
        names = [pattern.name for pattern in TARGETING_PATTERNS]
        assert names.index("if-unit-size") < names.index("if-unit-size-threshold")
        assert names.index("ratio-capped") < names.index("ratio-with-model-type") < names.index("ratio")
        assert names.index("specific-model-dual") < names.index("specific-model")
        assert names[-1] == "this-model"

    def test_unit_size_range(self) -> None:
        targeting = parse("if this unit contains between 3 and 5 models").targeting
        assert targeting.kind == "if-unit-size"
        assert targeting.unit_size_threshold == 3

    def test_unit_size_threshold(self) -> None:
        targeting = classify_targeting("If this unit contains 10 or more models, 1 Trooper can be equipped with 1 plasma gun.")
        assert targeting.kind == "if-unit-size-threshold"
        assert targeting.type == "if-unit-size"
        assert targeting.unit_size_threshold == 10

    def test_numeric_word_equals_digit(self) -> None:
        digits = parse("up to 3 weapons")
        words = parse("up to three weapons")
        assert digits.targeting.max_total == words.targeting.max_total == 3
        assert digits.targeting == words.targeting

    def test_ratio_with_model_type(self) -> None:
        targeting = classify_targeting(
            "For every 5 models in this unit, 1 Trooper's bolt rifle can be replaced with 1 grenade launcher."
        )
        assert targeting.kind == "ratio-with-model-type"
        assert targeting.type == "ratio"
        assert (targeting.ratio, targeting.count, targeting.model_type) == (5, 1, "Trooper")

    def test_ratio_capped(self) -> None:
        targeting = classify_targeting("For every 10 models in this unit, up to 2 models can each be equipped with 1 flamer.")
        assert targeting.kind == "ratio-capped"
        assert (targeting.ratio, targeting.max_per_ratio) == (10, 2)

    def test_specific_model(self) -> None:
        targeting = classify_targeting("The Sergeant's bolt pistol can be replaced with 1 plasma pistol.")
        assert targeting.kind == "specific-model"
        assert targeting.model_type == "Sergeant"

    def test_conditional_equipped(self) -> None:
        targeting = classify_targeting("If this model is equipped with a storm bolter, it can be equipped with 1 auspex.")
        assert targeting.type == "conditional"
        assert targeting.condition.required_names() == ["a storm bolter"]

    def test_this_unit_before_this_model(self) -> None:
        assert classify_targeting("This unit can be equipped with 1 icon.").kind == "this-unit"
        assert classify_targeting("This model can be equipped with 1 icon.").kind == "this-model"


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class TestActionPatterns:
    """Action classification and extracted weapons."""

    def test_choice_before_single(self) -> None:
        names = [pattern.name for pattern in ACTION_PATTERNS]
        assert names.index("replace-with-choice") < names.index("replace-with-single")
        assert names.index("replace-with-package") < names.index("replace-with-single")

    def test_replace_with_single(self) -> None:
        action = classify_action("This model's bolt pistol can be replaced with 1 plasma pistol.")
        assert action.kind == "replace-with-single"
        assert action.type == "replace"
        assert [ref.name for ref in action.removes] == ["bolt pistol"]
        assert action.adds[0].weapons[0].name == "plasma pistol"

    def test_replace_with_choice_list(self) -> None:
        action = classify_action(
            "This model's bolt pistol can be replaced with one of the following:"
            "<ul><li>1 plasma pistol</li><li>1 hand flamer</li></ul>"
        )
        assert action.kind == "replace-with-choice"
        assert action.is_choice_list is True
        assert [choice.weapons[0].name for choice in action.adds] == ["plasma pistol", "hand flamer"]

    def test_replace_with_package(self) -> None:
        action = classify_action("This model's boltgun can be replaced with 1 plasma pistol and 1 power sword.")
        assert action.kind == "replace-with-package"
        assert len(action.adds) == 1
        package = action.adds[0]
        assert package.is_package is True
        assert [ref.name for ref in package.weapons] == ["plasma pistol", "power sword"]

    def test_equip_up_to_reads_word_count(self) -> None:
        action = classify_action(
            "This model can be equipped with up to two of the following: 1 grenade launcher 1 power sword 1 plasma pistol."
        )
        assert action.kind == "equip-up-to"
        assert action.max_selections == 2
        assert [choice.weapons[0].name for choice in action.adds] == ["grenade launcher", "power sword", "plasma pistol"]

    def test_equip_with_single(self) -> None:
        action = classify_action("This unit can be equipped with 1 icon of the chapter.")
        assert action.kind == "equip-with-single"
        assert action.type == "add"
        assert action.adds[0].weapons[0].name == "icon of the chapter"

    def test_curly_quotes_are_normalized(self) -> None:
        text = "This model’s bolt pistol can be replaced with 1 plasma pistol."
        result = parse(text)
        assert result.raw_text == text
        assert result.targeting_kind == "this-model"
        assert [ref.name for ref in result.action.removes] == ["bolt pistol"]


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------

class TestNumbers:
    """Numeric words and digits, and unreadable counts."""

    @pytest.mark.parametrize("token,expected", [("one", 1), ("Three", 3), ("ten", 10), ("7", 7), ("12", 12)])
    def test_parse_number(self, token: str, expected: int) -> None:
        assert parse_number(token) == expected

    @pytest.mark.parametrize("token", ["eleven", "", "３", "2.5"])
    def test_malformed_token_raises(self, token: str) -> None:
        with pytest.raises(MalformedNumericTokenError) as excinfo:
            parse_number(token)
        assert excinfo.value.token == token

    def test_malformed_count_leaves_axis_unknown(self) -> None:
        # Fullwidth digits satisfy \d but are not a readable count.
        result = parse("Up to ３ models can each be equipped with 1 melta bomb.")
        assert result.targeting_kind == "unknown"
        assert result.action_kind == "each-equip-with-single"

    @pytest.mark.parametrize("words,digits", [
        (
            "This model's bolt pistol can be replaced with one plasma pistol.",
            "This model's bolt pistol can be replaced with 1 plasma pistol.",
        ),
        (
            "For every five models in this unit, one Trooper's bolt rifle can be replaced with one grenade launcher.",
            "For every 5 models in this unit, 1 Trooper's bolt rifle can be replaced with 1 grenade launcher.",
        ),
        (
            "For every ten models in this unit, up to two models can each be equipped with one flamer.",
            "For every 10 models in this unit, up to 2 models can each be equipped with 1 flamer.",
        ),
        (
            "If this unit contains ten or more models, one Trooper can be equipped with one plasma gun.",
            "If this unit contains 10 or more models, 1 Trooper can be equipped with 1 plasma gun.",
        ),
        (
            "If this unit contains between three and five models, it can be equipped with one icon.",
            "If this unit contains between 3 and 5 models, it can be equipped with 1 icon.",
        ),
    ])
    def test_word_counts_read_like_digits(self, words: str, digits: str) -> None:
        from_words, from_digits = parse(words), parse(digits)
        assert from_words.targeting_kind != "unknown"
        assert from_words.action_kind != "unknown"
        assert from_words.targeting == from_digits.targeting
        assert from_words.action == from_digits.action

    def test_word_count_in_ratio_with_model_type(self) -> None:
        targeting = classify_targeting(
            "For every five models in this unit, one Trooper's bolt rifle can be replaced with one grenade launcher."
        )
        assert targeting.kind == "ratio-with-model-type"
        assert (targeting.ratio, targeting.count, targeting.model_type) == (5, 1, "Trooper")

    def test_word_count_in_replacement(self) -> None:
        action = classify_action("This model's bolt pistol can be replaced with two plasma pistols.")
        assert action.kind == "replace-with-single"
        assert action.adds[0].weapons[0].count == 2


# ---------------------------------------------------------------------------
# Constraints and helpers
# ---------------------------------------------------------------------------

class TestConstraints:
    def test_mutually_exclusive_pair(self) -> None:
        result = parse(
            "This model can be equipped with 1 storm shield. "
            "This model cannot be equipped with both a storm shield and a power fist."
        )
        assert result.constraints.mutually_exclusive == [("storm shield", "power fist")]
        assert result.constraints.excluded_weapons == []

    def test_max_selections_and_duplicates(self) -> None:
        result = parse(
            "This model can be equipped with up to two of the following, and can take duplicates: "
            "1 flamer 1 meltagun"
        )
        assert result.constraints.max_selections == 2
        assert result.constraints.allow_duplicates is True

    def test_clean_weapon_name(self) -> None:
        assert clean_weapon_name("2 heavy bolters (see below).") == "heavy bolters"

    def test_comma_list_fallback(self) -> None:
        choices = extract_weapon_choices("flamer, meltagun, plasma gun")
        assert [choice.weapons[0].name for choice in choices] == ["flamer", "meltagun", "plasma gun"]


class TestParseOptions:
    def test_sorted_by_line_and_unparsed_described(self) -> None:
        options = [
            DatasheetOption(line=2, description="Gibberish text."),
            DatasheetOption(line=1, description="This model's bolt pistol can be replaced with 1 plasma pistol."),
        ]
        parsed = parse_options(options)
        assert [option.line for option in parsed] == [1, 2]
        assert describe_unparsed(parsed) == ["line 2: Gibberish text."]

    def test_round_trip(self) -> None:
        original = parse(
            "This model's bolt pistol can be replaced with one of the following:"
            "<ul><li>1 plasma pistol</li><li>1 hand flamer</li></ul> "
            "This model cannot be equipped with both a plasma pistol and a hand flamer.",
            line=3,
        )
        restored = ParsedWargearOption.model_validate_json(original.model_dump_json())
        assert restored == original
