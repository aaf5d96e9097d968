"""
Tests for user input validation.
"""

import math

import pytest

from myiep.core.schemas import GoalStatus, PromptLevel
from myiep.core.validation import (
    ValidationError,
    validate_assessment_status,
    validate_goal_status,
    validate_goal_title,
    validate_prompt_level,
    validate_student_name,
    validate_value,
)


class TestStudentName:
    def test_accepts_any_script(self):
        assert validate_student_name("김철수") == "김철수"
        assert validate_student_name("  Minjun   Kim ") == "Minjun Kim"

    def test_strips_numbering_prefix(self):
        assert validate_student_name("1. Minjun") == "Minjun"

    @pytest.mark.parametrize("name", [None, "", "   ", "123", "x" * 101])
    def test_rejects_invalid(self, name):
        with pytest.raises(ValidationError):
            validate_student_name(name)


class TestGoalTitle:
    def test_normalizes_whitespace(self):
        assert validate_goal_title("  Respond   to name ") == "Respond to name"

    def test_rejects_too_long(self):
        with pytest.raises(ValidationError, match="200"):
            validate_goal_title("a" * 201)


class TestValue:
    @pytest.mark.parametrize("raw,expected", [(0, 0.0), (100, 100.0), ("85", 85.0), (42.5, 42.5)])
    def test_accepts_range(self, raw, expected):
        assert validate_value(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", -1, 100.5, "abc", True, math.nan])
    def test_rejects_invalid(self, raw):
        with pytest.raises(ValidationError):
            validate_value(raw)


class TestEnums:
    def test_prompt_level_case_insensitive(self):
        assert validate_prompt_level(" Verbal ") == PromptLevel.VERBAL
        assert validate_prompt_level(PromptLevel.PHYSICAL) == PromptLevel.PHYSICAL

    def test_prompt_level_rejects_unknown(self):
        with pytest.raises(ValidationError, match="independent"):
            validate_prompt_level("shouting")

    def test_goal_status_defaults_to_in_progress(self):
        assert validate_goal_status(None) == GoalStatus.IN_PROGRESS
        assert validate_goal_status("") == GoalStatus.IN_PROGRESS
        assert validate_goal_status("ON_HOLD") == GoalStatus.ON_HOLD

    def test_goal_status_rejects_unknown(self):
        with pytest.raises(ValidationError):
            validate_goal_status("abandoned")

    def test_assessment_status(self):
        assert validate_assessment_status("Good") == "good"
        assert validate_assessment_status(None) is None
        assert validate_assessment_status(" ") is None
        with pytest.raises(ValidationError):
            validate_assessment_status("great")
