import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        base_currency: str,
        fx_provider: str,
        fx_timeout_secs: float,
        fx_cache_ttl_secs: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.base_currency = base_currency
        self.fx_provider = fx_provider
        self.fx_timeout_secs = fx_timeout_secs
        self.fx_cache_ttl_secs = fx_cache_ttl_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "America/Mexico_City")
    base_currency = os.getenv("FINANCE_BASE_CURRENCY", "USD").upper()
    fx_provider = os.getenv("FINANCE_FX_PROVIDER", "open_er_api")
    fx_timeout_secs = float(os.getenv("FINANCE_FX_TIMEOUT_SECS", "5"))
    fx_cache_ttl_secs = int(os.getenv("FINANCE_FX_CACHE_TTL_SECS", "3600"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        base_currency=base_currency,
        fx_provider=fx_provider,
        fx_timeout_secs=fx_timeout_secs,
        fx_cache_ttl_secs=fx_cache_ttl_secs,
    )
