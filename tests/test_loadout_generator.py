"""
Tests for weapon eligibility and valid-loadout generation.

Covers:
- Default loadout and roster reading
- Group construction ('any', per model type, unit-wide 'all')
- Weapon eligibility clauses and their merging
- Bounded enumeration: 'up to K' subsets and branching limits
- Determinism and round-trip of generated groups
"""

import pytest

from codex_engine.config import EngineConfig
from codex_engine.wargear.generator import (
    ItemResolver,
    apply_constraints,
    clean_model_type,
    generate_valid_loadouts,
    get_model_types,
    parse_default_loadout,
)
from codex_engine.wargear.models import (
    CompositionEntry,
    DatasheetOption,
    EligibilityClause,
    UnitWargear,
    ValidLoadoutGroup,
    WeaponEntry,
)
from codex_engine.wargear.parser import parse, parse_options


BASE = ("bolt-pistol", "bolt-rifle", "ccw")


def make_unit(*options: str, composition: str = "5 Troopers") -> UnitWargear:
    """Helper to create a single-model-type unit with the squad's catalog."""
    return UnitWargear(
        datasheet_id="u1",
        default_loadout="Every model is equipped with: bolt pistol; bolt rifle; close combat weapon.",
        unit_composition=[CompositionEntry(description=composition, min=5, max=5)],
        weapons=[
            WeaponEntry(id="bolt-pistol", name="Bolt pistol"),
            WeaponEntry(id="bolt-rifle", name="Bolt rifle"),
            WeaponEntry(id="ccw", name="Close combat weapon"),
            WeaponEntry(id="power-sword", name="Power sword"),
            WeaponEntry(id="plasma-pistol", name="Plasma pistol"),
            WeaponEntry(id="grenade-launcher", name="Grenade launcher"),
        ],
        options=[DatasheetOption(datasheet_id="u1", line=i, description=text) for i, text in enumerate(options, 1)],
    )


UP_TO_TWO = (
    "This model can be equipped with up to two of the following: "
    "1 grenade launcher 1 power sword 1 plasma pistol."
)


# ---------------------------------------------------------------------------
# Roster and defaults
# ---------------------------------------------------------------------------

class TestRoster:
    def test_clean_model_type(self) -> None:
        assert clean_model_type("4-9 Troopers") == "Trooper"
        assert clean_model_type("1 Sergeant") == "Sergeant"

    def test_model_types_in_roster_order(self, squad: UnitWargear) -> None:
        assert get_model_types(squad.unit_composition) == ["Sergeant", "Trooper"]

    def test_empty_roster_is_any(self) -> None:
        assert get_model_types([]) == ["any"]

    def test_named_default_loadouts(self) -> None:
        defaults = parse_default_loadout(
            "The Sergeant is equipped with: bolt pistol; power sword. "
            "Every Trooper is equipped with: bolt rifle."
        )
        assert [(d.model_type, d.items) for d in defaults] == [
            ("Sergeant", ["bolt pistol", "power sword"]),
            ("Trooper", ["bolt rifle"]),
        ]

    def test_item_resolution(self, squad: UnitWargear) -> None:
        resolver = ItemResolver(squad.model_copy(update={"wargear_abilities": ["Auspex"]}))
        assert resolver.resolve("Bolt Rifle") == "bolt-rifle"
        assert resolver.resolve("auspex") == "wargear-ability:auspex"
        assert resolver.resolve("Storm Shield") == "sq1:storm-shield"


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

class TestGeneration:
    """Loadout groups for the squad fixture."""

    def test_group_layout(self, squad: UnitWargear) -> None:
        result = generate_valid_loadouts(squad)
        assert [group.model_type for group in result.groups] == ["any", "Sergeant", "Trooper"]

    def test_shared_default_goes_to_any(self, squad: UnitWargear) -> None:
        groups = {group.model_type: group for group in generate_valid_loadouts(squad).groups}
        assert groups["any"].items == [BASE]

    def test_sergeant_swaps_combine(self, squad: UnitWargear) -> None:
        groups = {group.model_type: group for group in generate_valid_loadouts(squad).groups}
        assert groups["Sergeant"].items == [
            ("bolt-rifle", "ccw", "plasma-pistol"),
            ("bolt-pistol", "bolt-rifle", "power-sword"),
            ("bolt-rifle", "plasma-pistol", "power-sword"),
        ]
        assert groups["Sergeant"].targeting is None

    def test_ratio_group_targeting(self, squad: UnitWargear) -> None:
        groups = {group.model_type: group for group in generate_valid_loadouts(squad).groups}
        trooper = groups["Trooper"]
        assert trooper.items == [("bolt-pistol", "ccw", "grenade-launcher")]
        assert trooper.targeting.type == "ratio"
        assert (trooper.targeting.ratio, trooper.targeting.count) == (5, 1)

    def test_unparsed_lines_reported(self, squad: UnitWargear) -> None:
        report = generate_valid_loadouts(squad).report
        assert report.unparsed_lines == [4]
        assert report.skipped_lines == []
        assert report.model_types == ["Sergeant", "Trooper"]

    def test_tuples_are_sorted_and_unique(self, squad: UnitWargear) -> None:
        for group in generate_valid_loadouts(squad).groups:
            assert all(list(items) == sorted(items) for items in group.items)
            assert len(set(group.items)) == len(group.items)

    def test_idempotent(self, squad: UnitWargear) -> None:
        assert generate_valid_loadouts(squad) == generate_valid_loadouts(squad)

    def test_preparsed_options_match(self, squad: UnitWargear) -> None:
        parsed = parse_options(squad.options)
        assert generate_valid_loadouts(squad, parsed) == generate_valid_loadouts(squad)

    def test_group_round_trip(self, squad: UnitWargear) -> None:
        for group in generate_valid_loadouts(squad).groups:
            assert ValidLoadoutGroup.model_validate_json(group.model_dump_json()) == group

    def test_no_actionable_options_means_no_groups(self) -> None:
        result = generate_valid_loadouts(make_unit("None", "* Footnote text."))
        assert result.groups == []
        assert result.eligibility == []

    def test_single_untargeted_group_becomes_any(self) -> None:
        result = generate_valid_loadouts(make_unit("This model's bolt pistol can be replaced with 1 plasma pistol."))
        assert [group.model_type for group in result.groups] == ["any"]
        assert result.groups[0].items == [BASE, ("bolt-rifle", "ccw", "plasma-pistol")]

    def test_unit_wide_wargear(self) -> None:
        result = generate_valid_loadouts(make_unit(
            "This model's bolt pistol can be replaced with 1 plasma pistol.",
            "This unit can be equipped with 1 icon of the chapter.",
        ))
        unit_wide = result.groups[-1]
        assert unit_wide.model_type == "all"
        assert unit_wide.items == [(), ("u1:icon-of-the-chapter",)]

    def test_conditional_option_needs_item(self) -> None:
        result = generate_valid_loadouts(make_unit(
            "This model's bolt pistol can be replaced with 1 plasma pistol.",
            "If this model is equipped with a plasma pistol, it can be equipped with 1 power sword.",
        ))
        items = result.groups[0].items
        assert ("bolt-rifle", "ccw", "plasma-pistol", "power-sword") in items
        assert ("bolt-pistol", "bolt-rifle", "ccw", "power-sword") not in items

    def test_mutually_exclusive_pair_filters(self) -> None:
        result = generate_valid_loadouts(make_unit(
            "This model cannot be equipped with both a power sword and a plasma pistol. "
            "This model can be equipped with up to two of the following: 1 power sword 1 plasma pistol."
        ))
        items = result.groups[0].items
        assert ("bolt-pistol", "bolt-rifle", "ccw", "plasma-pistol", "power-sword") not in items
        assert ("bolt-pistol", "bolt-rifle", "ccw", "power-sword") in items

    @pytest.mark.parametrize("limit,kept", [("0", False), ("one", True), ("2", True)])
    def test_item_count_limit(self, limit: str, kept: bool) -> None:
        unit = make_unit()
        loadouts = [BASE, ("bolt-rifle", "ccw", "plasma-pistol")]
        option = parse(f"This model cannot be equipped with more than {limit} plasma pistol.")
        result = apply_constraints(loadouts, [option], ItemResolver(unit))
        assert BASE in result
        assert (("bolt-rifle", "ccw", "plasma-pistol") in result) is kept


# ---------------------------------------------------------------------------
# Bounded enumeration
# ---------------------------------------------------------------------------

class TestBoundedEnumeration:
    def test_up_to_k_enumerates_subsets(self) -> None:
        result = generate_valid_loadouts(make_unit(UP_TO_TWO))
        # default + 3 singles + 3 pairs
        assert len(result.groups[0].items) == 7

    def test_branching_limit_skips_option(self) -> None:
        result = generate_valid_loadouts(make_unit(UP_TO_TWO), config=EngineConfig(max_branching=5))
        assert result.report.skipped_lines == [1]
        assert result.groups[0].items == [BASE]

    def test_enumerated_count_limit(self) -> None:
        config = EngineConfig(max_enumerated_count=1)
        result = generate_valid_loadouts(make_unit(UP_TO_TWO), config=config)
        assert result.report.skipped_lines == [1]

    def test_loadout_limit_keeps_earlier_options(self) -> None:
        unit = make_unit("This model's bolt pistol can be replaced with 1 plasma pistol.", UP_TO_TWO)
        result = generate_valid_loadouts(unit, config=EngineConfig(max_loadouts_per_model_type=4))
        assert result.report.skipped_lines == [2]
        assert result.groups[0].items == [BASE, ("bolt-rifle", "ccw", "plasma-pistol")]


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------

class TestWeaponEligibility:
    def test_clauses_follow_targeting(self, squad: UnitWargear) -> None:
        eligibility = {e.weapon_id: e.eligibility for e in generate_valid_loadouts(squad).eligibility}
        assert list(eligibility) == ["power-sword", "plasma-pistol", "grenade-launcher"]
        assert eligibility["power-sword"] == [EligibilityClause(type="model-type", model_types=["Sergeant"])]
        assert eligibility["grenade-launcher"] == [
            EligibilityClause(type="ratio", ratio=5, count=1, model_types=["Trooper"])
        ]

    def test_any_subsumes_other_clauses(self) -> None:
        unit = make_unit(
            "The Sergeant's bolt pistol can be replaced with 1 plasma pistol.",
            "This model's bolt pistol can be replaced with 1 plasma pistol.",
            composition="1 Sergeant",
        )
        eligibility = generate_valid_loadouts(unit).eligibility
        assert eligibility[0].eligibility == [EligibilityClause(type="any")]

    @pytest.mark.parametrize("first,second", [("Sergeant", "Champion"), ("Champion", "Sergeant")])
    def test_model_type_clauses_merge(self, first: str, second: str) -> None:
        unit = make_unit(
            f"The {first}'s bolt pistol can be replaced with 1 plasma pistol.",
            f"The {second}'s bolt pistol can be replaced with 1 plasma pistol.",
        )
        clauses = generate_valid_loadouts(unit).eligibility[0].eligibility
        assert clauses == [EligibilityClause(type="model-type", model_types=[first, second])]
