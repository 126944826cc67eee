import os
import sys
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

# Ensure the repository root is on sys.path so tests can import the clinicnav package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from clinicnav.models import TriageItem  # noqa: E402


@pytest.fixture
def make_item():
    """Return a factory building triage items with readable defaults."""

    def _make(item_id: int, *, unread: bool = False, active: bool = False, name: str | None = None):
        return TriageItem(
            id=item_id,
            has_unread=unread,
            is_active=active,
            display_name=name or f"Patient {item_id}",
            last_activity="2024-05-01T10:00:00Z",
        )

    return _make


@pytest.fixture(scope='function')
def api_client() -> Iterator[TestClient]:
    """Yield a FastAPI test client with an empty session store."""

    from clinicnav import main

    main.STORE.clear()
    with TestClient(main.app) as client:
        yield client
    main.STORE.clear()
