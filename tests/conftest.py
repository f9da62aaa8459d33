from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.fleet import FleetDashboardApp
from backend.fleet.models import User


@pytest.fixture()
def app(tmp_path: Path) -> FleetDashboardApp:
    app = FleetDashboardApp.create(tmp_path / "test_fleet.db")
    return app


@pytest.fixture()
def seeded_app(app: FleetDashboardApp) -> FleetDashboardApp:
    app.seed_defaults()
    return app


@pytest.fixture()
def admin(seeded_app: FleetDashboardApp) -> User:
    user = seeded_app.database.get_user_by_username("admin")
    assert user is not None
    return user


@pytest.fixture()
def upload_user(seeded_app: FleetDashboardApp) -> User:
    user = seeded_app.database.get_user_by_username("upload")
    assert user is not None
    return user


@pytest.fixture()
def guest(seeded_app: FleetDashboardApp) -> User:
    user = seeded_app.database.get_user_by_username("guest")
    assert user is not None
    return user
