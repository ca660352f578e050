"""
Shared pytest fixtures for duplicate search and patient merge tests.
"""
import pytest
from fastapi.testclient import TestClient

from main import app
from models import Episode, audit_logs, episodes
from seed import seed_data

ADMIN_HEADERS = {"X-User-Id": "u-admin", "User-Agent": "pytest-browser/1.0"}
CLINIC_B_HEADERS = {"X-User-Id": "u-other", "User-Agent": "pytest-browser/1.0"}


@pytest.fixture
def client():
    """FastAPI TestClient."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def seeded_data():
    """Reset to seed profiles/episodes and an empty audit log around every test."""
    seed_data()
    yield
    seed_data()


@pytest.fixture
def smith_records():
    """
    Concrete scenario: John Smith x2 and Jon Smith x1 (same DOB),
    plus Alice Jones who must not be grouped.
    """
    episodes.clear()
    audit_logs.clear()
    records = [
        make_episode("s1", "John Smith", "1980-01-01", date_of_service="2024-03-01"),
        make_episode("s2", "John Smith", "1980-01-01", date_of_service="2024-02-01"),
        make_episode("s3", "Jon Smith", "1980-01-01", date_of_service="2024-01-01"),
        make_episode("a1", "Alice Jones", "1975-05-05", date_of_service="2023-12-01"),
    ]
    episodes.extend(records)
    return records


def make_episode(episode_id, name, dob, clinic_id="A", date_of_service="2024-01-01", **extra):
    """Helper: build an Episode with sensible clinical defaults."""
    return Episode(
        episodeId=episode_id,
        clinicId=clinic_id,
        patientName=name,
        dateOfBirth=dob,
        region=extra.pop("region", "Lumbar"),
        diagnosis=extra.pop("diagnosis", "Low back pain"),
        dateOfService=date_of_service,
        **extra,
    )
