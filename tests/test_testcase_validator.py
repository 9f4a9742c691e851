import pytest

from codearena.core.exceptions import ValidationError
from codearena.services.testcase_validator import testcase_validator


def test_normalizes_line_endings_and_defaults():
    normalized, warnings = testcase_validator.validate_and_normalize(
        100,
        [
            {"input": "1 2\r\n", "expected_output": "3\r\n", "is_sample": True, "points": 0},
            {"input": "2 2", "expected_output": 4, "points": 50},
            {"input": "5 5", "expected_output": "10", "points": "50"},
        ],
    )

    assert normalized[0]["input"] == "1 2\n"
    assert normalized[0]["expected_output"] == "3\n"
    assert normalized[1]["expected_output"] == "4"
    assert normalized[1]["is_sample"] is False
    assert normalized[2]["points"] == 50
    assert warnings == []


def test_missing_fields_are_reported():
    with pytest.raises(ValidationError) as exc_info:
        testcase_validator.validate_and_normalize(100, [{"points": 10}])

    errors = exc_info.value.details["errors"]
    assert "test_cases[0].input is required" in errors
    assert "test_cases[0].expected_output is required" in errors


def test_negative_points_are_rejected():
    with pytest.raises(ValidationError):
        testcase_validator.validate_and_normalize(100, [{"input": "", "expected_output": "", "points": -1}])


def test_hidden_points_may_not_exceed_max_score():
    cases = [{"input": str(i), "expected_output": str(i), "points": 40} for i in range(3)]

    with pytest.raises(ValidationError) as exc_info:
        testcase_validator.validate_and_normalize(100, cases)

    assert exc_info.value.details == {"hidden_points": 120, "max_score": 100}


def test_sample_points_do_not_count_towards_budget():
    cases = [
        {"input": "s", "expected_output": "s", "is_sample": True, "points": 500},
        {"input": "a", "expected_output": "a", "points": 60},
        {"input": "b", "expected_output": "b", "points": 40},
    ]

    normalized, warnings = testcase_validator.validate_and_normalize(100, cases)

    assert len(normalized) == 3
    assert warnings == []


def test_warnings_for_thin_problems():
    _, warnings = testcase_validator.validate_and_normalize(
        100, [{"input": "a", "expected_output": "a", "points": 10}]
    )

    assert any("No sample" in w for w in warnings)
    assert any("Too few hidden" in w for w in warnings)
    assert any("below max score" in w for w in warnings)

    _, empty = testcase_validator.validate_and_normalize(100, [])
    assert any("no test cases" in w for w in empty)


def test_addition_respects_existing_budget():
    existing = [{"is_sample": False, "points": 90}]

    ok = testcase_validator.validate_addition(100, existing, {"input": "x", "expected_output": "y", "points": 10})
    assert ok["points"] == 10

    with pytest.raises(ValidationError):
        testcase_validator.validate_addition(100, existing, {"input": "x", "expected_output": "y", "points": 11})
