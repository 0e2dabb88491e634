import os
from functools import lru_cache
from pathlib import Path


DEFAULT_PORTS = {
    "all": 3000,
    "users": 3001,
    "costs": 3002,
    "logs": 3003,
    "admin": 3004,
}


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        service: str,
        port: int,
        users_service_url: str,
        users_timeout_secs: float,
        log_level: str,
        team: list[tuple[str, str]],
        warm_reports: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.service = service
        self.port = port
        self.users_service_url = users_service_url
        self.users_timeout_secs = users_timeout_secs
        self.log_level = log_level
        self.team = team
        self.warm_reports = warm_reports


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("COSTS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _parse_team(raw: str) -> list[tuple[str, str]]:
    members: list[tuple[str, str]] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        first, _, last = entry.partition(" ")
        members.append((first, last.strip()))
    return members


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "costs.db"
    database_url = os.getenv("COSTS_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("COSTS_TIMEZONE", "Asia/Jerusalem")
    service = os.getenv("COSTS_SERVICE", "all").strip().lower()
    if service not in DEFAULT_PORTS:
        raise ValueError(f"Unknown service: {service}")
    port = int(os.getenv("COSTS_PORT", str(DEFAULT_PORTS[service])))
    users_service_url = os.getenv("COSTS_USERS_SERVICE_URL", "").rstrip("/")
    users_timeout_secs = float(os.getenv("COSTS_USERS_TIMEOUT_SECS", "5"))
    log_level = os.getenv("COSTS_LOG_LEVEL", "INFO").upper()
    team = _parse_team(
        os.getenv("COSTS_TEAM", "Shirel Ashtamker,Miriam Ben David")
    )
    warm_reports = os.getenv("COSTS_WARM_REPORTS", "1") not in ("0", "false", "no")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        service=service,
        port=port,
        users_service_url=users_service_url,
        users_timeout_secs=users_timeout_secs,
        log_level=log_level,
        team=team,
        warm_reports=warm_reports,
    )
