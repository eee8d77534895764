import random
import re
from datetime import datetime, timedelta, timezone

import pytest

from use_cases import profile_policy
from use_cases.auth_errors import RateLimitError, ValidationError

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def test_can_change_username_without_history() -> None:
    assert profile_policy.can_change_username(None, NOW) is True
    assert profile_policy.days_until_username_change(None, NOW) == 0


def test_can_change_username_boundary() -> None:
    assert profile_policy.can_change_username(NOW - timedelta(days=14), NOW) is True
    assert profile_policy.can_change_username(NOW - timedelta(days=13, hours=23), NOW) is False


def test_days_until_username_change() -> None:
    assert profile_policy.days_until_username_change(NOW - timedelta(days=4), NOW) == 10
    assert profile_policy.days_until_username_change(NOW - timedelta(days=30), NOW) == 0


def test_rate_limit_checked_before_shape() -> None:
    with pytest.raises(RateLimitError) as excinfo:
        profile_policy.validate_new_username("x", NOW - timedelta(days=1), NOW)
    assert excinfo.value.days_remaining == 13
    assert "13 days" in str(excinfo.value)


@pytest.mark.parametrize("username", ["ab", "a" * 21, "", "with space", "dash-name", "émile", "abc\n", "\nabc"])
def test_invalid_usernames(username) -> None:
    with pytest.raises(ValidationError):
        profile_policy.validate_new_username(username, None, NOW)


@pytest.mark.parametrize("username", ["abc", "a" * 20, "Night_Owl_99"])
def test_valid_usernames(username) -> None:
    profile_policy.validate_new_username(username, None, NOW)


def test_display_name_bounds() -> None:
    profile_policy.validate_display_name("Al")
    profile_policy.validate_display_name("x" * 50)
    with pytest.raises(ValidationError):
        profile_policy.validate_display_name("A")
    with pytest.raises(ValidationError):
        profile_policy.validate_display_name("x" * 51)


def test_guest_username_format() -> None:
    rng = random.Random(3)
    for _ in range(200):
        assert re.fullmatch(r"guest\d{6}", profile_policy.generate_guest_username(rng))


def test_guest_username_pads_small_numbers() -> None:
    rng = random.Random()
    rng.randint = lambda a, b: 1
    assert profile_policy.generate_guest_username(rng) == "guest000001"


def test_generate_random_user_uses_timestamp_suffix() -> None:
    at = datetime.fromtimestamp(1_700_012_345, tz=timezone.utc)
    username, name = profile_policy.generate_random_user(at, random.Random(5))

    adjective, noun = name.split(" ")
    assert adjective in profile_policy.ADJECTIVES
    assert noun in profile_policy.NOUNS
    assert username == f"{adjective.lower()}{noun.lower()}2345"


def test_clean_phone_number() -> None:
    assert profile_policy.clean_phone_number("+1 (555) 010-9999") == "15550109999"
    assert profile_policy.clean_phone_number("call me") == ""
