import pytest

from omr_config import NumeralSystem
from omr_numerals import (
    CAPTIONS,
    caption,
    default_set_codes,
    format_number,
    format_option,
    parse_bengali_digits,
    parse_number,
)


def test_bengali_digits_map_one_to_one():
    assert format_number(2024, NumeralSystem.BENGALI) == "২০২৪"
    assert format_number(7, NumeralSystem.BENGALI) == "৭"
    assert format_number(2024, NumeralSystem.LATIN) == "2024"


@pytest.mark.parametrize("n", range(0, 1000))
def test_bengali_round_trip(n):
    assert parse_bengali_digits(format_number(n, NumeralSystem.BENGALI)) == n


def test_parse_number_accepts_mixed_scripts():
    assert parse_number("১2৩") == 123
    assert parse_number(" 42 ") == 42


@pytest.mark.parametrize("text", ["", "   ", "12a", "৩.৫", "-1"])
def test_parse_number_rejects_non_digits(text):
    with pytest.raises(ValueError):
        parse_number(text)


def test_parse_bengali_digits_rejects_latin():
    with pytest.raises(ValueError):
        parse_bengali_digits("12")


def test_option_letters():
    assert [format_option(i, NumeralSystem.LATIN) for i in range(5)] == ["A", "B", "C", "D", "E"]
    assert [format_option(i, NumeralSystem.BENGALI) for i in range(5)] == ["ক", "খ", "গ", "ঘ", "ঙ"]


def test_option_index_out_of_table_raises():
    with pytest.raises(IndexError):
        format_option(5, NumeralSystem.LATIN)


@pytest.mark.parametrize("system", list(NumeralSystem))
def test_every_caption_exists_in_both_scripts(system):
    for key in CAPTIONS:
        assert caption(key, system)


def test_default_set_codes_follow_script():
    assert default_set_codes(NumeralSystem.LATIN) == ("A", "B", "C", "D")
    assert default_set_codes(NumeralSystem.BENGALI) == ("ক", "খ", "গ", "ঘ")
