import pytest
from datetime import datetime, timezone

from celnav.config import AppConfig
from celnav.models import GeoPosition


@pytest.fixture
def j2000():
    """J2000.0 epoch, 2000-01-01 12:00 UTC."""
    return datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def sight_time():
    """A representative evening twilight sight time."""
    return datetime(2024, 3, 15, 23, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def config():
    """Default application configuration (no file)."""
    return AppConfig()


@pytest.fixture
def assumed_position():
    """Canonical hand-worked assumed position, 40°N 70°W."""
    return GeoPosition(40.0, -70.0)


class FakeClock:
    """Manually advanced clock for confidence-decay tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient with the lifespan executed against a default configuration."""
    from fastapi.testclient import TestClient
    from celnav import main

    config_file = tmp_path / "config.yaml"
    config_file.write_text("api:\n  log_level: WARNING\n  json_logs: true\n")
    monkeypatch.setattr(main, "CONFIG_PATH", str(config_file))

    with TestClient(main.app) as test_client:
        yield test_client
