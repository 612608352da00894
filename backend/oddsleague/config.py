"""
backend/oddsleague/config.py

Purpose:
    Central settings loading for the API, the scheduled jobs and the CLI.
    Secrets default to empty so modules import cleanly; each job checks the
    ones it needs via require_setting() before touching any row.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class ConfigurationError(RuntimeError):
    """A required credential or connection setting is missing."""


class Settings(BaseSettings):
    MONGO_URI: str = ""
    MONGO_DB: str = "oddsleague"
    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Shared secrets for the admin/cron surface and the external auth service
    ADMIN_SECRET: str = ""
    CRON_SECRET: str = ""
    JWT_SECRET: str = ""

    # TheOddsAPI (batch h2h odds)
    ODDS_API_KEY: str = ""
    ODDS_API_BASE_URL: str = "https://api.the-odds-api.com/v4"
    ODDS_API_REGION: str = "uk"
    ODDS_SPORT_KEY: str = "soccer_epl"
    ODDS_PREFERRED_BOOKMAKERS: str = "bet365,skybet"

    # Odds locking window: [now + margin, now + horizon]
    ODDS_LOCK_SAFETY_MARGIN_SECONDS: int = 60
    ODDS_LOCK_HORIZON_HOURS: int = 24
    ODDS_REFRESH_LOOKAHEAD_DAYS: int = 3

    # football-data.org (final scores)
    FOOTBALL_DATA_API_KEY: str = ""
    FOOTBALL_DATA_BASE_URL: str = "https://api.football-data.org/v4"
    FOOTBALL_DATA_COMPETITION: str = "PL"
    RESULT_SYNC_DAYS_BACK: int = 3

    # Outbound HTTP
    PROVIDER_TIMEOUT_SECONDS: float = 15.0
    PROVIDER_MAX_RETRIES: int = 2
    PROVIDER_BASE_DELAY_SECONDS: float = 2.0
    PROVIDER_CIRCUIT_FAILURE_THRESHOLD: int = 3
    PROVIDER_CIRCUIT_RECOVERY_SECONDS: int = 300

    # Game rules
    DEFAULT_SEASON: str = "2025/26"
    DEFAULT_STAKE: int = 10
    DEFAULT_ODDS: float = 2.0

    # Leaderboard read endpoint
    LEADERBOARD_MAX_PAGE_SIZE: int = 50
    LEADERBOARD_RATE_LIMIT: int = 30
    LEADERBOARD_RATE_WINDOW_SECONDS: int = 60

    # Scheduler
    AUTOMATION_ENABLED: bool = False
    ODDS_JOB_INTERVAL_MINUTES: int = 30
    RESULTS_JOB_INTERVAL_MINUTES: int = 30

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @property
    def preferred_bookmakers(self) -> list[str]:
        return [
            b.strip().lower()
            for b in self.ODDS_PREFERRED_BOOKMAKERS.split(",")
            if b.strip()
        ]


settings = Settings()


def require_setting(name: str) -> str:
    """Return a non-empty setting value or raise ConfigurationError."""
    value = str(getattr(settings, name, "") or "").strip()
    if not value:
        raise ConfigurationError(f"{name} is not set")
    return value
