import logging

from use_cases.ports import DurableStore

log = logging.getLogger(__name__)

USER_CACHE_PREFIXES = (
    "cached_user_analysis",
    "cached_home_timeline",
    "cached_contacts_sentiment",
    "cached_emotion_snapshot",
)


class UserCache:
    """Per-user cached API responses, kept in the same durable store as the session."""

    def __init__(self, store: DurableStore):
        self._store = store

    @staticmethod
    def cache_key(prefix: str, username: str) -> str:
        return f"{prefix}_{username}"

    def clear_user_cache(self, username: str) -> None:
        for prefix in USER_CACHE_PREFIXES:
            self._store.remove(self.cache_key(prefix, username))
        log.info(f"Cleared cached data for @{username}")
