from abc import ABC, abstractmethod
from datetime import date
from typing import Any


class ProviderError(RuntimeError):
    """An upstream provider failed or answered with a non-success response.

    Raised for the whole pass: callers abort without writing anything.
    """

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider
        self.status_code = status_code


class OddsProviderError(ProviderError):
    pass


class ResultProviderError(ProviderError):
    pass


class BaseOddsProvider(ABC):
    """Batch odds source: one fetch per pass, events looked up by id in memory."""

    @abstractmethod
    async def get_events(self) -> list[dict[str, Any]]:
        """Fetch every upcoming event with its bookmakers and h2h market.

        Each event carries at least:
        - id: str
        - home_team / away_team: str
        - commence_time: ISO 8601 str
        - bookmakers: [{"key", "title", "markets": [{"key": "h2h", "outcomes": [...]}]}]
        """
        ...


class BaseResultProvider(ABC):
    """Final status and score per match."""

    @abstractmethod
    async def get_matches(self, date_from: date, date_to: date) -> list[dict[str, Any]]:
        """Fetch matches in a date range.

        Returns normalized dicts:
        - utc_date: datetime
        - home_team / away_team: str
        - finished: bool
        - home_score / away_score: int | None
        """
        ...
