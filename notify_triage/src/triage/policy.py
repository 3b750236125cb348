"""Filter policy resolution: which categories are active for a user and what they contain."""
from typing import List, NamedTuple, Optional

from notify_triage.src.config import config
from notify_triage.src.data_models import FilterPolicy, WaitingCheck, PrioritySender, Keyword
from notify_triage.src.logger import logger
from notify_triage.src.repository import BaseFilterRepository


class ConfigurationUnavailableError(Exception):
    """Raised when the general-checks prompt cannot be loaded; no message is evaluated."""
    pass


class ResolvedPolicy(NamedTuple):
    policy: FilterPolicy
    waiting_checks: List[WaitingCheck]
    priority_senders: List[PrioritySender]
    keywords: List[Keyword]


def load_filter_settings(repository: BaseFilterRepository, user_id: str, channel: str) -> tuple:
    """Reads the four activation flags, treating a failed read as 'everything active'."""
    try:
        return tuple(bool(flag) for flag in repository.get_filter_settings(user_id, channel))
    except Exception as e:
        logger.error(f"Failed to get filter settings for user {user_id} on {channel}: {e}")
        return (True, True, True, True)


def _load_rule_list(fetch, label: str, user_id: str, channel: str) -> list:
    try:
        return list(fetch(user_id, channel) or [])
    except Exception as e:
        logger.error(f"Failed to get {label} for user {user_id} on {channel}: {e}")
        return []


def _valid_threshold(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 10


def resolve_importance_threshold(
        repository: BaseFilterRepository,
        user_id: str,
        channel: str,
        importance_threshold: Optional[int] = None
) -> int:
    """
    Caller-supplied threshold wins, then the stored one, then the configured default.

    A stored value that cannot be read or lies outside 0..10 falls back to the default.
    """
    if importance_threshold is not None:
        return importance_threshold
    try:
        stored = repository.get_importance_threshold(user_id, channel)
    except Exception as e:
        logger.error(f"Failed to get importance threshold for user {user_id} on {channel}: {e}")
        stored = None
    if stored is None:
        return config.default_importance_threshold
    if not _valid_threshold(stored):
        logger.error(f"Stored importance threshold {stored!r} for user {user_id} on {channel} is not an integer in 0..10, using default")
        return config.default_importance_threshold
    return stored


def resolve_policy(
        repository: BaseFilterRepository,
        user_id: str,
        channel: str,
        last_activated: int,
        importance_threshold: Optional[int] = None
) -> ResolvedPolicy:
    """
    Loads the user's filter policy and the rule lists of the active categories.

    Rule lists of inactive categories are never fetched. A failing rule-list fetch
    degrades to an empty list.

    Raises:
        ConfigurationUnavailableError: If the general-checks prompt cannot be fetched.
    """
    keywords_active, priority_senders_active, waiting_checks_active, general_active = \
        load_filter_settings(repository, user_id, channel)

    waiting_checks = _load_rule_list(repository.get_waiting_checks, "waiting checks", user_id, channel) \
        if waiting_checks_active else []
    priority_senders = _load_rule_list(repository.get_priority_senders, "priority senders", user_id, channel) \
        if priority_senders_active else []
    keywords = _load_rule_list(repository.get_keywords, "keywords", user_id, channel) \
        if keywords_active else []

    try:
        general_checks_prompt = repository.get_general_checks_prompt(user_id, channel)
    except Exception as e:
        logger.error(f"Failed to get general checks prompt for user {user_id} on {channel}: {e}")
        raise ConfigurationUnavailableError(
            f"General checks prompt unavailable for user {user_id} on {channel}"
        ) from e

    policy = FilterPolicy(
        keywords_active=keywords_active,
        priority_senders_active=priority_senders_active,
        waiting_checks_active=waiting_checks_active,
        general_active=general_active,
        threshold=resolve_importance_threshold(repository, user_id, channel, importance_threshold),
        last_activated=int(last_activated or 0),
        general_checks_prompt=general_checks_prompt or "",
    )
    logger.info(
        f"Resolved policy for user {user_id} on {channel}: waiting_checks={len(waiting_checks)}, "
        f"priority_senders={len(priority_senders)}, keywords={len(keywords)}, "
        f"general_active={general_active}, threshold={policy.threshold}"
    )
    return ResolvedPolicy(policy, waiting_checks, priority_senders, keywords)
