"""Tests for evaluating notation end to end."""

import threading

import pytest

from d20roller import rng
from d20roller.roll import (
    DiceRollError,
    InvalidDieSizeError,
    MalformedNotationError,
    TooManyDiceError,
    UndefinedRollMappingError,
    UndefinedVariableError,
    UnknownFunctionError,
)
from d20roller.roll_parser import MAX_DICE
from d20roller.roller import Roller, RollerConfigError, RollerOptions, load_config

FIGHTER_MAP = {
    "initiative": "1d20 + $dexMod",
    "longsword": {
        "hit": "1d20 + $strMod + $proficiency",
        "dmg": {"1h": "1d8 + $strMod", "2h": "1d10 + $strMod"},
    },
}

FIGHTER_VARIABLES = {"strMod": 2, "dexMod": 1, "proficiency": 2}


class TestBasicNotation:
    @pytest.mark.parametrize(
        "notation,low,high",
        [
            ("1d20", 1, 20),
            ("1d20 + 2", 3, 22),
            ("sum(2d6)", 2, 12),
            ("3d6 - 3", 0, 15),
            ("max(2d20)", 1, 20),
            ("min(2d20)", 1, 20),
            ("avg(4d6)", 1, 6),
            ("max(drop(4d6))", 1, 6),
            ("drop(4d6)", 3, 18),
            ("4dF", -4, 4),
        ],
    )
    def test_total_in_range(self, notation: str, low: int, high: int) -> None:
        roller = Roller()
        for _ in range(50):
            assert low <= roller.roll(notation).total <= high

    def test_every_die_in_range(self) -> None:
        result = Roller().roll("10d8")
        assert len(result.original_rolls) == 10
        assert all(1 <= value <= 8 for value in result.original_rolls)

    def test_fate_dice_in_range(self) -> None:
        result = Roller().roll("4dF")
        assert len(result.rolls) == 4
        assert all(value in (-1, 0, 1) for value in result.rolls)

    def test_no_precedence(self) -> None:
        assert Roller().roll("2 + 3 * 4").total == 20
        assert Roller().roll("10 - 2 - 3").total == 5

    def test_division_is_not_rounded(self) -> None:
        assert Roller().roll("7 / 2").total == 3.5

    def test_division_by_zero(self) -> None:
        with pytest.raises(DiceRollError):
            Roller().roll("1d6 / 0")

    def test_siblings_are_added(self) -> None:
        assert Roller().roll("2 3").total == 5
        assert Roller().roll("2, 3").total == 5

    def test_zero_dice(self) -> None:
        result = Roller().roll("0d6 + 1")
        assert result.total == 1
        assert result.breakdown == []


class TestScriptedRolls:
    def test_drop(self, scripted_roller) -> None:
        result = scripted_roller(3, 6, 1, 4).roll("drop(4d6)")
        assert result.total == 13
        assert sorted(result.rolls) == [3, 4, 6]
        assert result.original_rolls == [3, 6, 1, 4]
        assert result.breakdown == [
            {"4d6: 0": 3},
            {"4d6: 1": 6},
            {"4d6: 2": 1},
            {"4d6: 3": 4},
        ]

    def test_drop_is_reproducible(self, scripted_roller) -> None:
        first = scripted_roller(3, 6, 1, 4).roll("drop(4d6)")
        second = scripted_roller(3, 6, 1, 4).roll("drop(4d6)")
        assert first.total == second.total
        assert first.breakdown == second.breakdown

    def test_count(self, scripted_roller) -> None:
        result = scripted_roller(6, 1, 6, 2, 6, 3, 4, 5).roll("count(6, 8d6)")
        assert result.total == 3
        assert len(result.breakdown) == 8

    def test_count_default_target(self, scripted_roller) -> None:
        roller = scripted_roller(6, 1, 6, 2, 6, 3, 4, 5)
        assert roller.roll("count(8d6)").total == 3

    def test_count_configured_target(self, scripted_roller) -> None:
        roller = scripted_roller(
            6, 1, 6, 2, 6, 3, 4, 5, options=RollerOptions(default_count=1)
        )
        assert roller.roll("count(8d6)").total == 1

    def test_fate(self, scripted_roller) -> None:
        result = scripted_roller(1, 3, 5, 6).roll("4dF")
        assert result.rolls == [-1, 0, 1, 1]
        assert result.total == 1
        assert result.fate_rolls == ["-", "□", "+", "+"]
        assert list(result.breakdown[0]) == ["4dF: 0"]

    def test_max_of_several(self, scripted_roller) -> None:
        result = scripted_roller(2, 3, 6, 1).roll("max(2d6, 2d6)")
        assert result.rolls == [6, 1]

    def test_operator_sums_dice(self, scripted_roller) -> None:
        assert scripted_roller(2, 5).roll("2d6 * 2").total == 14

    def test_generate_roll_defaults(self, scripted_roller) -> None:
        assert scripted_roller(20).generate_roll() == 20
        assert scripted_roller(3).generate_roll(max_roll=4) == 3


class TestFunctionComposition:
    def test_drop_removes_lowest(self) -> None:
        roller = Roller()
        for _ in range(50):
            result = roller.roll("drop(4d6)")
            dice = result.original_rolls
            assert result.total == sum(dice) - min(dice)

    def test_ability_scores(self) -> None:
        notation = "drop(%s)" % ", ".join(["sum(drop(4d6))"] * 7)
        result = Roller().roll(notation)
        assert len(result.rolls) == 6
        assert all(3 <= score <= 18 for score in result.rolls)
        assert len(result.breakdown) == 28

    def test_drop_of_several(self) -> None:
        result = Roller().roll("drop(1d20, 1d20, 1d20)")
        assert len(result.rolls) == 2


class TestRollMapAndVariables:
    def test_path(self) -> None:
        roller = Roller(roll_map=FIGHTER_MAP, variables={"strMod": 2})
        for _ in range(50):
            result = roller.roll("longsword.dmg.2h")
            assert result.notation == "1d10 + 2"
            assert 3 <= result.total <= 12

    def test_variables(self) -> None:
        result = Roller(variables={"dex": 3}).roll("1d20 + $dex")
        assert result.notation == "1d20 + 3"
        assert 4 <= result.total <= 23

    def test_undefined_variable(self) -> None:
        with pytest.raises(UndefinedVariableError, match="missing"):
            Roller().roll("1d20 + $missing")

    def test_bare_fate_die_is_a_roll_map_name(self) -> None:
        with pytest.raises(UndefinedRollMappingError):
            Roller().roll("dF")
        result = Roller().roll("dF + 0")
        assert len(result.fate_rolls) == 1

    def test_undefined_mapping(self) -> None:
        with pytest.raises(UndefinedRollMappingError, match="longsword.dmg.3h"):
            Roller(roll_map=FIGHTER_MAP).roll("longsword.dmg.3h")

    def test_tables_are_copied(self) -> None:
        variables = {"dex": 3}
        roller = Roller(variables=variables)
        variables["dex"] = 100
        assert roller.roll("$dex").total == 3


class TestErrors:
    def test_unknown_function(self) -> None:
        with pytest.raises(UnknownFunctionError):
            Roller().roll("explode(1d6)")

    def test_invalid_die_size(self) -> None:
        with pytest.raises(InvalidDieSizeError):
            Roller().roll("4dT")

    def test_malformed(self) -> None:
        with pytest.raises(MalformedNotationError):
            Roller().roll("1d6 +")

    def test_errors_share_a_base(self) -> None:
        with pytest.raises(ValueError):
            Roller().roll("1d20 + $missing")

    def test_too_many_dice(self) -> None:
        with pytest.raises(TooManyDiceError) as info:
            Roller().roll("100000000d6")
        assert info.value.limit == MAX_DICE


class TestConstruction:
    def test_default_roll(self) -> None:
        result = Roller().roll()
        assert result.notation == "1d20"
        assert 1 <= result.total <= 20

    def test_configured_default_roll(self) -> None:
        roller = Roller(options=RollerOptions(default_roll="2d4"))
        assert roller.roll().notation == "2d4"

    def test_from_notation(self) -> None:
        roller = Roller.from_notation("1d20 + 2")
        assert roller.result is not None
        assert 3 <= roller.result.total <= 22

    def test_with_config(self) -> None:
        roller = Roller.with_config(
            {
                "map": FIGHTER_MAP,
                "variables": FIGHTER_VARIABLES,
                "options": {"default_count": 5},
            }
        )
        assert roller.options.default_count == 5
        assert roller.options.default_roll == "1d20"
        assert roller.roll("longsword.hit").notation == "1d20 + 2 + 2"

    def test_with_empty_config(self) -> None:
        roller = Roller.with_config(None)
        assert roller.roll_map == {}
        assert roller.variables == {}

    def test_load_config(self, tmp_path) -> None:
        path = tmp_path / "roller.yaml"
        path.write_text(
            "map:\n"
            "  initiative: 1d20 + $dexMod\n"
            "variables:\n"
            "  dexMod: 3\n"
            "options:\n"
            "  default_roll: 1d6\n"
        )
        roller = load_config(str(path))
        assert roller.roll("initiative").notation == "1d20 + 3"
        assert roller.roll().notation == "1d6"

    def test_default_random_source(self) -> None:
        assert Roller().random_source is rng.random_uint32

    def test_quoted_options_are_coerced(self) -> None:
        # every draw of 5 rolls a 6 on a d6
        roller = Roller.with_config(
            {"options": {"default_count": "6"}}, random_source=lambda: 5
        )
        assert roller.options.default_count == 6
        assert roller.roll("count(4d6)").total == 4

    def test_unknown_option(self) -> None:
        with pytest.raises(RollerConfigError, match="default_cout"):
            Roller.with_config({"options": {"default_cout": 6}})

    def test_option_of_the_wrong_type(self) -> None:
        with pytest.raises(RollerConfigError, match="default_max_roll"):
            RollerOptions.on_load({"default_max_roll": "twenty"})

    def test_bad_options_file(self, tmp_path) -> None:
        path = tmp_path / "roller.yaml"
        path.write_text("options:\n  default_rol: 1d6\n")
        with pytest.raises(RollerConfigError):
            load_config(str(path))

    def test_small_float_variable(self) -> None:
        result = Roller(variables={"tiny": 0.00001}).roll("1 + $tiny")
        assert result.notation == "1 + 0.00001"
        assert result.total == pytest.approx(1.00001)



class TestConcurrency:
    def test_each_roll_has_its_own_breakdown(self) -> None:
        roller = Roller()
        failures = []

        def worker() -> None:
            for _ in range(200):
                result = roller.roll("4d6")
                labels = [label for entry in result.breakdown for label in entry]
                if labels != ["4d6: 0", "4d6: 1", "4d6: 2", "4d6: 3"]:
                    failures.append(labels)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert failures == []
