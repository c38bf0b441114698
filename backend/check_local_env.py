"""Validate the local Serenity backend environment.

Usage:
  set -a
  source backend/.env
  set +a
  python3 backend/check_local_env.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Mapping


ENV_PATH = Path(__file__).resolve().parent / ".env"
DB_VARIABLES = ("DB_USER", "DB_PASSWORD", "DB_NAME", "DB_HOST", "DB_PORT")
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if value.startswith(("'", '"')) and value.endswith(("'", '"')) and len(value) >= 2:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def check_file_path(env: Mapping[str, str], name: str, errors: list[str], warnings: list[str]) -> None:
    value = env.get(name, "").strip()
    if not value:
        warnings.append(f"{name} is not set")
        return
    if value.startswith("{"):
        return
    if not Path(value).expanduser().exists():
        errors.append(f"{name} points to a missing file: {value}")


def collect_problems(env: Mapping[str, str]) -> tuple[list[str], list[str]]:
    """Return (errors, warnings) for the given environment."""
    errors: list[str] = []
    warnings: list[str] = []

    database_url = env.get("SERENITY_DATABASE_URL", "").strip()
    if database_url:
        if not database_url.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            errors.append(
                "SERENITY_DATABASE_URL must use an async driver (postgresql+asyncpg or sqlite+aiosqlite)"
            )
    else:
        for name in DB_VARIABLES:
            if not env.get(name, "").strip():
                errors.append(f"{name} is missing (or set SERENITY_DATABASE_URL)")

    if env.get("CLOUDSQL_INSTANCE_CONNECTION_NAME", "").strip() and not database_url:
        warnings.append(
            "CLOUDSQL_INSTANCE_CONNECTION_NAME is set. For local TCP testing, leave it blank and use DB_HOST/DB_PORT."
        )

    log_level = env.get("SERENITY_LOG_LEVEL", "").strip()
    if log_level and log_level.upper() not in LOG_LEVELS:
        errors.append(f"SERENITY_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

    check_file_path(env, "FIREBASE_SERVICE_ACCOUNT_JSON", errors, warnings)
    if not env.get("FIREBASE_SERVICE_ACCOUNT_JSON", "").strip():
        warnings.append(
            "Firebase Admin will fall back to Application Default Credentials if available."
        )
    return errors, warnings


def main() -> int:
    load_env_file(ENV_PATH)

    py_version = sys.version_info
    if py_version < (3, 11) or py_version >= (3, 14):
        print(
            "Unsupported Python version: "
            f"{py_version.major}.{py_version.minor}. "
            "Use Python 3.11, 3.12, or 3.13 for this repo."
        )
        return 1

    errors, warnings = collect_problems(os.environ)

    print(f"Loaded env file: {ENV_PATH}")
    if errors:
        print("\nErrors:")
        for item in errors:
            print(f"  - {item}")
    if warnings:
        print("\nWarnings:")
        for item in warnings:
            print(f"  - {item}")

    if errors:
        print("\nLocal environment is not ready.")
        return 1

    print("\nLocal environment looks ready.")
    print("Next:")
    print("  1. cd backend")
    print("  2. uvicorn serenity.main:app --reload")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
