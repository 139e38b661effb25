from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from borg_fakes import FakeBorg


@pytest.fixture()
def fake_borg(tmp_path: Path) -> FakeBorg:
    return FakeBorg(tmp_path)


@pytest.fixture()
def fixed_now() -> datetime:
    return datetime(2024, 8, 6, 12, 0, tzinfo=UTC)
