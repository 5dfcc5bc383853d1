from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import sys


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class BillingSettings:
    busy_timeout_seconds: float = 10.0


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "BillingSystem") -> AppPaths:
    override = os.environ.get("BILLING_HOME", "").strip()
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    db = base / "billing.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)


def load_settings() -> BillingSettings:
    raw = os.environ.get("BILLING_DB_TIMEOUT", "").strip()
    if not raw:
        return BillingSettings()
    try:
        timeout = float(raw)
    except ValueError:
        raise ValueError(f"BILLING_DB_TIMEOUT must be a number of seconds, got {raw!r}") from None
    if timeout <= 0:
        raise ValueError("BILLING_DB_TIMEOUT must be > 0.")
    return BillingSettings(busy_timeout_seconds=timeout)
