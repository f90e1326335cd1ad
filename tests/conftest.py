"""Shared fixtures."""

import pytest

from custom_components.bloodthinner.database import BloodThinnerDatabase


@pytest.fixture
async def database(tmp_path):
    db = BloodThinnerDatabase(tmp_path / "bloodthinner.db")
    await db.async_setup()
    yield db
    await db.async_close()
