from __future__ import annotations

from core.fixtures.text_indexer import filter_by_pattern, has_cases, index_case_lines

_FIXTURE = """\
# Add your Liquid Tests here
unit_1_test:
  context:
    period: "2023-12-31"
  expectation:
    reconciled: true

# second case
unit_2_test:
  context:
    period: "2023-12-31"
  expectation:
    reconciled: false"""


def test_index_case_lines_uses_literal_lines() -> None:
    assert index_case_lines(_FIXTURE) == {"unit_1_test": 2, "unit_2_test": 9}


def test_index_round_trips_with_raw_text_search() -> None:
    lines = _FIXTURE.splitlines()

    for name, line_number in index_case_lines(_FIXTURE).items():
        first = next(number for number, line in enumerate(lines, start=1) if name in line)
        assert first == line_number


def test_index_prefers_key_line_over_earlier_comment_mention() -> None:
    text = "# unit_2_test covers the edge\nunit_1_test:\n  data: {}\nunit_2_test:\n  data: {}"

    assert index_case_lines(text) == {"unit_1_test": 2, "unit_2_test": 4}


def test_index_falls_back_to_first_token_mention() -> None:
    text = "? unit_1_test\n: {data: {}}\n"

    assert index_case_lines(text) == {"unit_1_test": 1}


def test_filter_keeps_leading_comment_and_trims_trailing_blank_lines() -> None:
    filtered = filter_by_pattern(_FIXTURE, "unit_2")

    assert filtered.included_cases == ["unit_2_test"]
    assert filtered.text.startswith("# second case\nunit_2_test:")
    assert "unit_1_test" not in filtered.text
    assert filtered.line_adjustments == {"unit_2_test": 7}


def test_filter_first_case_excludes_following_cases() -> None:
    filtered = filter_by_pattern(_FIXTURE, "unit_1")

    assert filtered.included_cases == ["unit_1_test"]
    assert "unit_2_test" not in filtered.text
    assert not filtered.text.endswith("\n")
    assert filtered.text.endswith("reconciled: true")
    assert filtered.line_adjustments == {"unit_1_test": 0}


def test_filter_matching_everything_preserves_order_without_drift() -> None:
    filtered = filter_by_pattern(_FIXTURE, "_test")

    assert filtered.included_cases == ["unit_1_test", "unit_2_test"]
    assert filtered.text == _FIXTURE
    assert filtered.line_adjustments == {"unit_1_test": 0, "unit_2_test": 0}


def test_filter_collapses_extra_blank_lines_between_blocks() -> None:
    text = "a_case:\n  x: 1\n\n\n\nb_case:\n  x: 2\n\n\nc_case:\n  x: 3\n"

    filtered = filter_by_pattern(text, "_case")

    assert filtered.text == "a_case:\n  x: 1\n\nb_case:\n  x: 2\n\nc_case:\n  x: 3"
    assert filtered.line_adjustments == {"a_case": 0, "b_case": 2, "c_case": 3}


def test_filter_without_match_is_empty() -> None:
    filtered = filter_by_pattern(_FIXTURE, "nothing_matches")

    assert filtered.text == ""
    assert filtered.included_cases == []
    assert filtered.line_adjustments == {}


def test_has_cases_rejects_header_only_fixture() -> None:
    assert has_cases("# Add your Liquid Tests here\n") is False
    assert has_cases(None) is False
    assert has_cases(_FIXTURE) is True
