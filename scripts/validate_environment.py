#!/usr/bin/env python3
"""Smoke-check a local Sessionboard install.

Runs each check against a throwaway SQLite file and prints one PASS/FAIL
line per check. Exit status is non-zero when any check fails.
"""

from __future__ import annotations

import importlib
import sys
import tempfile
from dataclasses import replace
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Callable

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sessionboard.repository.data_repository import DataRepository
from sessionboard.services.auth_service import AuthService
from sessionboard.services.scheduling_service import AutoScheduleService
from sessionboard.utils.config import Settings, get_settings

BANNER = "=" * 44
DEMO_SLUG = "demo-unconf"
VALIDATION_TOKEN = "validation-token"
# (import name, distribution name)
REQUIRED_PACKAGES = (
    ("fastapi", "fastapi"),
    ("uvicorn", "uvicorn"),
    ("pydantic", "pydantic"),
    ("pandas", "pandas"),
    ("httpx", "httpx"),
    ("pytest", "pytest"),
)


class CheckFailed(Exception):
    """Raised by a check with the reason printed after FAIL."""


def check_python() -> str:
    found = sys.version.split()[0]
    if sys.version_info < (3, 11):
        raise CheckFailed(f"need >= 3.11, found {found}")
    return found


def check_packages() -> str:
    problems: list[str] = []
    versions: list[str] = []
    for module_name, dist_name in REQUIRED_PACKAGES:
        try:
            importlib.import_module(module_name)
            versions.append(f"{dist_name} {version(dist_name)}")
        except (ImportError, PackageNotFoundError) as exc:
            problems.append(f"{module_name} ({exc})")
    if problems:
        raise CheckFailed("missing/unimportable -> " + "; ".join(problems))
    return ", ".join(versions)


def _make_checks(settings: Settings) -> list[tuple[str, Callable[[], str]]]:
    repository = DataRepository(settings)

    def check_schema() -> str:
        repository.initialize_database()
        return str(repository.database_path.name)

    def check_seed() -> str:
        if repository.seed_demo_event() is None:
            raise CheckFailed("demo event was not seeded into an empty database")
        return DEMO_SLUG

    def check_preview() -> str:
        auth_service = AuthService(repository=repository, settings=settings)
        service = AutoScheduleService(
            repository=repository,
            auth_service=auth_service,
            settings=settings,
        )
        user_id = auth_service.authenticate(VALIDATION_TOKEN)
        stats = service.preview_schedule(slug=DEMO_SLUG, user_id=user_id).stats
        if stats.assigned + stats.unassigned != stats.total_sessions:
            raise CheckFailed("preview stats are inconsistent")
        return (
            f"{stats.assigned}/{stats.total_sessions} placed, "
            f"avg score {stats.average_score:.2f}"
        )

    return [
        ("Python", check_python),
        ("Required packages", check_packages),
        ("Database schema", check_schema),
        ("Demo event seed", check_seed),
        ("Auto-schedule preview", check_preview),
    ]


def main() -> int:
    lines: list[str] = []
    failures = 0
    with tempfile.TemporaryDirectory(prefix="sessionboard-env-") as temp_dir:
        settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "sessionboard_validation.db",
            demo_admin_token=VALIDATION_TOKEN,
        )
        for name, check in _make_checks(settings):
            try:
                detail = check()
            except Exception as exc:
                failures += 1
                lines.append(f"[FAIL] {name}: {exc}")
            else:
                lines.append(f"[PASS] {name}: {detail}")

    print(BANNER)
    print(" Sessionboard Environment Validation")
    print(BANNER)
    for line in lines:
        print(f" {line}")
    print(BANNER)
    if failures:
        print(f" {failures} check(s) failed.")
    else:
        print(" All checks passed. Environment is ready.")
    print(BANNER)
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
