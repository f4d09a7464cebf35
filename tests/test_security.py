"""Tests for workshop-code and participant field validation."""

import random

import pytest

from companion_backend.config import CODE_ALPHABET
from companion_backend.security import (
    cookie_policy,
    generate_workshop_code,
    is_valid_workshop_code,
    normalize_email,
    normalize_participant_name,
    normalize_workshop_code,
)


class TestWorkshopCode:
    @pytest.mark.parametrize(
        "code,expected",
        [
            ("AB12", True),
            ("ab12", True),
            ("WXYZ", True),
            ("AB1", False),
            ("AB123", False),
            ("AB1$", False),
            ("", False),
            (" AB12", False),
        ],
    )
    def test_is_valid(self, code, expected):
        assert is_valid_workshop_code(code) is expected

    def test_non_string_is_invalid(self):
        assert is_valid_workshop_code(None) is False
        assert is_valid_workshop_code(1234) is False

    def test_normalize_uppercases(self):
        assert normalize_workshop_code("wxyz") == "WXYZ"

    def test_normalize_rejects_invalid(self):
        with pytest.raises(ValueError):
            normalize_workshop_code("AB1$")

    def test_generated_codes_are_valid(self):
        rng = random.Random(7)
        for _ in range(200):
            code = generate_workshop_code(rng)
            assert len(code) == 4
            assert all(c in CODE_ALPHABET for c in code)
            assert is_valid_workshop_code(code)

    def test_generation_is_seedable(self):
        assert generate_workshop_code(random.Random(42)) == generate_workshop_code(random.Random(42))


class TestParticipantFields:
    def test_name_is_stripped(self):
        assert normalize_participant_name("  Alice ") == "Alice"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 51])
    def test_name_bounds(self, name):
        with pytest.raises(ValueError):
            normalize_participant_name(name)

    def test_name_at_max_length(self):
        assert normalize_participant_name("x" * 50) == "x" * 50

    def test_empty_email_means_absent(self):
        assert normalize_email(None) is None
        assert normalize_email("") is None
        assert normalize_email("  ") is None

    def test_email_format(self):
        assert normalize_email("alice@example.com") == "alice@example.com"
        with pytest.raises(ValueError):
            normalize_email("not-an-email")


def test_cookie_policy_secure_only_in_production():
    assert cookie_policy(True)["secure"] is True
    dev = cookie_policy(False)
    assert dev["secure"] is False
    assert dev["samesite"] == "strict"
    assert dev["path"] == "/"
