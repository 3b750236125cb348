from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from notify_triage.src.data_models import WaitingCheck, PrioritySender, Keyword
from notify_triage.src.logger import logger

# Order matches BaseFilterRepository.get_filter_settings
FilterSettings = Tuple[bool, bool, bool, bool]

DEFAULT_GENERAL_CHECKS_PROMPT = (
    "Notify the user about messages that need a response or an action from them soon: "
    "time-sensitive requests, security alerts, payment or delivery problems, and personal "
    "messages from people they know. Newsletters, promotions and automated notifications "
    "that need no action are not important."
)

# --- Abstract Base Class ---

class BaseFilterRepository(ABC):
    """Storage of the user's filter configuration, scoped per channel ("imap", "telegram", ...)."""

    @abstractmethod
    def get_filter_settings(self, user_id: str, channel: str) -> FilterSettings:
        """Return (keywords_active, priority_senders_active, waiting_checks_active, general_active)."""
        pass

    @abstractmethod
    def get_waiting_checks(self, user_id: str, channel: str) -> List[WaitingCheck]:
        pass

    @abstractmethod
    def get_priority_senders(self, user_id: str, channel: str) -> List[PrioritySender]:
        pass

    @abstractmethod
    def get_keywords(self, user_id: str, channel: str) -> List[Keyword]:
        pass

    @abstractmethod
    def get_general_checks_prompt(self, user_id: str, channel: str) -> str:
        pass

    def get_importance_threshold(self, user_id: str, channel: str) -> Optional[int]:
        """Stored notification threshold, or None when the user never set one."""
        return None


# --- In-memory Implementation ---

class InMemoryFilterRepository(BaseFilterRepository):
    """
    Keeps filter configuration in a nested dict: {user_id: {channel: channel_filters}}.

    channel_filters may hold the keys `settings` (a dict of the four *_active flags),
    `importance_threshold`, `general_checks_prompt`, `waiting_checks`, `priority_senders`
    and `keywords`. Rule lists accept either plain strings or row dicts.
    Missing flags default to active.
    """

    def __init__(self, data: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self._data = data or {}

    def set_channel_filters(self, user_id: str, channel: str, **filters) -> None:
        self._data.setdefault(str(user_id), {}).setdefault(channel, {}).update(filters)

    def _channel(self, user_id: str, channel: str) -> Dict[str, Any]:
        return self._data.get(str(user_id), {}).get(channel, {})

    def get_filter_settings(self, user_id: str, channel: str) -> FilterSettings:
        settings = self._channel(user_id, channel).get('settings') or {}
        return (
            bool(settings.get('keywords_active', True)),
            bool(settings.get('priority_senders_active', True)),
            bool(settings.get('waiting_checks_active', True)),
            bool(settings.get('general_active', True)),
        )

    def get_waiting_checks(self, user_id: str, channel: str) -> List[WaitingCheck]:
        checks = []
        for index, row in enumerate(self._channel(user_id, channel).get('waiting_checks') or []):
            if isinstance(row, str):
                row = {'id': index + 1, 'content': row}
            checks.append(WaitingCheck(
                id=int(row['id']),
                content=str(row['content']),
                remove_when_found=bool(row.get('remove_when_found', True)),
            ))
        return checks

    def get_priority_senders(self, user_id: str, channel: str) -> List[PrioritySender]:
        rows = self._channel(user_id, channel).get('priority_senders') or []
        return [PrioritySender(sender=row if isinstance(row, str) else row['sender']) for row in rows]

    def get_keywords(self, user_id: str, channel: str) -> List[Keyword]:
        rows = self._channel(user_id, channel).get('keywords') or []
        return [Keyword(keyword=row if isinstance(row, str) else row['keyword']) for row in rows]

    def get_general_checks_prompt(self, user_id: str, channel: str) -> str:
        prompt = self._channel(user_id, channel).get('general_checks_prompt')
        return prompt if prompt else DEFAULT_GENERAL_CHECKS_PROMPT

    def get_importance_threshold(self, user_id: str, channel: str) -> Optional[int]:
        threshold = self._channel(user_id, channel).get('importance_threshold')
        return int(threshold) if threshold is not None else None


# --- YAML Implementation ---

class YamlFilterRepository(InMemoryFilterRepository):
    """
    Loads filter configuration from a YAML file shaped as:

        users:
          "42":
            imap:
              settings: {keywords_active: true, general_active: false}
              importance_threshold: 6
              waiting_checks: [{id: 7, content: invoice overdue}]
              priority_senders: [boss@example.com]
              keywords: [urgent]
    """

    def __init__(self, filepath: str):
        if not Path(filepath).is_file():
            raise FileNotFoundError(f"Filter configuration file not found at: {filepath}")
        super().__init__(self._load_filters_from_file(filepath))

    def _load_filters_from_file(self, file_path: str) -> Dict[str, Dict[str, Dict[str, Any]]]:
        with open(file_path, 'r', encoding='utf-8') as f:
            content = yaml.safe_load(f) or {}
        users = content.get('users') if isinstance(content, dict) else None
        if not isinstance(users, dict):
            logger.warning(f"Filter configuration '{file_path}' has no 'users' mapping, nothing loaded.")
            return {}
        logger.info(f"Loaded filter configuration for {len(users)} users from '{file_path}'.")
        return {str(user_id): channels or {} for user_id, channels in users.items()}
