"""Centralized username, display-name and generated-identity rules."""

import random
import re
from datetime import datetime, timedelta
from typing import Optional, Tuple

from use_cases.auth_errors import RateLimitError, ValidationError

USERNAME_CHANGE_COOLDOWN = timedelta(days=14)
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
USERNAME_PATTERN = re.compile(r"[A-Za-z0-9_]+")

GUEST_PREFIX = "guest"
GUEST_DISPLAY_NAME = "Guest User"

ADJECTIVES = [
    "Cool", "Smart", "Happy", "Bright", "Swift", "Bold", "Calm", "Nice", "Kind", "Wise",
    "Epic", "Quick", "Zen", "Prime", "Pure", "Super", "Ultra", "Mega", "Stellar", "Cosmic",
]
NOUNS = [
    "Tiger", "Eagle", "Lion", "Fox", "Wolf", "Bear", "Star", "Moon", "Sun", "River",
    "Ocean", "Storm", "Fire", "Lightning", "Thunder", "Wind", "Galaxy", "Comet", "Phoenix", "Dragon",
]


def can_change_username(last_change: Optional[datetime], now: datetime) -> bool:
    if last_change is None:
        return True
    return now - last_change >= USERNAME_CHANGE_COOLDOWN


def days_until_username_change(last_change: Optional[datetime], now: datetime) -> int:
    if last_change is None:
        return 0
    remaining = (last_change + USERNAME_CHANGE_COOLDOWN) - now
    return max(0, remaining.days)


def validate_new_username(username: str, last_change: Optional[datetime], now: datetime) -> None:
    """
    Raises RateLimitError or ValidationError when the change is not allowed.
    The cooldown is checked before the shape of the new username.
    """
    if not can_change_username(last_change, now):
        days_left = days_until_username_change(last_change, now)
        raise RateLimitError(f"You can change your username again in {days_left} days", days_remaining=days_left)

    if not username or not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(f"Username must be between {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters")

    if not USERNAME_PATTERN.fullmatch(username):
        raise ValidationError("Username can only contain letters, numbers, and underscores")


def validate_display_name(name: str) -> None:
    if not name or not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError(f"Name must be between {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters")


def validate_login_input(username: str, display_name: str) -> None:
    if not username:
        raise ValidationError("Username cannot be empty")
    if not display_name:
        raise ValidationError("Name cannot be empty")


def generate_guest_username(rng: Optional[random.Random] = None) -> str:
    # Collisions between devices are accepted; there is no registry to check against.
    rng = rng or random
    return f"{GUEST_PREFIX}{rng.randint(1, 999_999):06d}"


def generate_random_user(now: datetime, rng: Optional[random.Random] = None) -> Tuple[str, str]:
    """Returns (username, display_name) such as ("swiftfox4821", "Swift Fox")."""
    rng = rng or random
    adjective = rng.choice(ADJECTIVES)
    noun = rng.choice(NOUNS)
    suffix = int(now.timestamp()) % 10_000
    return f"{adjective.lower()}{noun.lower()}{suffix}", f"{adjective} {noun}"


def clean_phone_number(phone: str) -> str:
    return "".join(ch for ch in phone if ch.isdigit())
