"""
Shared fixtures for the license optimizer tests.
"""

import logging

import pytest

from core.catalog import DEFAULT_CATALOG
from core.models import UserRecord, derive_status


def make_user(user_id: str, licenses, department: str = "Marketing",
              usage_gb: float = 10.0, max_gb: float = 100.0, cost=None) -> UserRecord:
    """UserRecord priced from the default catalog unless a cost is given."""
    licenses = tuple(licenses)
    if cost is None:
        cost = DEFAULT_CATALOG.compute_cost(DEFAULT_CATALOG.normalize(licenses))
    return UserRecord(
        id=user_id,
        display_name=f"User {user_id}",
        upn=f"{user_id}@contoso.com",
        department=department,
        licenses=licenses,
        usage_gb=usage_gb,
        max_gb=max_gb,
        cost=cost,
        status=derive_status(usage_gb, max_gb),
    )


@pytest.fixture
def roster():
    """Small tenant: an idle E5 marketer, a busy E1 IT admin, a legal E5 with a redundant add-on."""
    return [
        make_user("alice", ["SPE_E5"], department="Marketing", usage_gb=5, max_gb=100),
        make_user("bob", ["STANDARDPACK"], department="IT", usage_gb=30, max_gb=50),
        make_user("carol", ["SPE_E5", "WIN_DEF_ATP"], department="Legal", usage_gb=80, max_gb=100),
    ]


@pytest.fixture
def restore_logging():
    """Undo handler changes made by the entry points' setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
