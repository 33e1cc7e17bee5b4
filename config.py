import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        run_catch_up_on_startup: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.run_catch_up_on_startup = run_catch_up_on_startup


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "fintrack.db"
    database_url = os.getenv("FINTRACK_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINTRACK_TIMEZONE", "Europe/Lisbon")
    run_catch_up_on_startup = _env_flag("FINTRACK_RUN_CATCH_UP_ON_STARTUP", "true")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        run_catch_up_on_startup=run_catch_up_on_startup,
    )
