import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        dashboard_recent_limit: int,
        dashboard_trailing_months: int,
        dashboard_top_categories: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.dashboard_recent_limit = dashboard_recent_limit
        self.dashboard_trailing_months = dashboard_trailing_months
        self.dashboard_top_categories = dashboard_top_categories


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "Europe/Berlin")
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    dashboard_recent_limit = int(os.getenv("FINANCE_DASHBOARD_RECENT_LIMIT", "10"))
    dashboard_trailing_months = int(
        os.getenv("FINANCE_DASHBOARD_TRAILING_MONTHS", "6")
    )
    dashboard_top_categories = int(os.getenv("FINANCE_DASHBOARD_TOP_CATEGORIES", "5"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        dashboard_recent_limit=dashboard_recent_limit,
        dashboard_trailing_months=dashboard_trailing_months,
        dashboard_top_categories=dashboard_top_categories,
    )
