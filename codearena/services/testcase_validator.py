"""Test case validation and normalization."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

from codearena.core.exceptions import ValidationError


def _normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).replace("\r\n", "\n").replace("\r", "\n")


class TestcaseValidator:
    """
    Validator for problem test case payloads.

    Non-sample points may not add up to more than the problem's max score;
    anything less only produces a warning.
    """

    __test__ = False  # not a pytest class

    @staticmethod
    def _normalize_test_case(tc: Dict[str, Any], index: int) -> Dict[str, Any]:
        errors: List[str] = []
        normalized = dict(tc)

        if "input" not in normalized:
            errors.append(f"test_cases[{index}].input is required")
        if "expected_output" not in normalized:
            errors.append(f"test_cases[{index}].expected_output is required")

        normalized["input"] = _normalize_text(normalized.get("input"))
        normalized["expected_output"] = _normalize_text(normalized.get("expected_output"))
        normalized["is_sample"] = bool(normalized.get("is_sample", False))

        points = normalized.get("points", 10)
        try:
            points = int(points)
        except (TypeError, ValueError):
            errors.append(f"test_cases[{index}].points must be an integer")
        else:
            if points < 0:
                errors.append(f"test_cases[{index}].points must be >= 0")
        normalized["points"] = points

        if errors:
            raise ValidationError("Invalid test case", details={"errors": errors})

        return normalized

    @staticmethod
    def _check_points_budget(max_score: int, test_cases: Iterable[Dict[str, Any]]) -> int:
        hidden_points = sum(tc["points"] for tc in test_cases if not tc["is_sample"])
        if hidden_points > max_score:
            raise ValidationError(
                "Test case points exceed the problem's max score",
                details={"hidden_points": hidden_points, "max_score": max_score},
            )
        return hidden_points

    @classmethod
    def validate_and_normalize(
        cls,
        max_score: int,
        test_cases: List[Dict[str, Any]],
    ) -> Tuple[List[Dict[str, Any]], List[str]]:
        """
        Validate and normalize the test cases of a new problem.

        Returns:
            Tuple[normalized_test_cases, warnings]
        """
        if not isinstance(test_cases, list):
            raise ValidationError("test_cases must be a list")

        normalized: List[Dict[str, Any]] = []
        for idx, tc in enumerate(test_cases):
            if not isinstance(tc, dict):
                raise ValidationError(
                    "Invalid test case",
                    details={"errors": [f"test_cases[{idx}] must be an object"]},
                )
            normalized.append(cls._normalize_test_case(tc, idx))

        hidden_points = cls._check_points_budget(max_score, normalized)

        warnings: List[str] = []
        sample_count = sum(1 for tc in normalized if tc["is_sample"])
        hidden_count = len(normalized) - sample_count

        if not normalized:
            warnings.append("Problem has no test cases yet; submissions cannot be judged until some are added.")
        elif sample_count == 0:
            warnings.append("No sample test cases defined. Participants will have limited feedback.")
        if normalized and hidden_count < 2:
            warnings.append("Too few hidden test cases. Consider adding more for robust grading.")
        if normalized and hidden_points < max_score:
            warnings.append(
                f"Hidden test case points ({hidden_points}) are below max score ({max_score})."
            )

        return normalized, warnings

    @classmethod
    def validate_addition(
        cls,
        max_score: int,
        existing: List[Dict[str, Any]],
        new_case: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Validate one test case appended to an existing problem"""
        normalized = cls._normalize_test_case(new_case, len(existing))
        cls._check_points_budget(max_score, list(existing) + [normalized])
        return normalized


testcase_validator = TestcaseValidator()
