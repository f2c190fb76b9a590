"""Abstract interface for the host settings key-value store."""

from abc import ABC, abstractmethod


class SettingsRepository(ABC):
    """Abstract interface for string settings keyed by name."""

    @abstractmethod
    async def get_setting(self, key: str) -> str | None: ...

    @abstractmethod
    async def set_setting(self, key: str, value: str) -> None: ...
