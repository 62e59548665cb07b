"""
Shared configuration for adversarial tests.

Adversarial tests run against the in-memory collaborators from the root
conftest; they attack the domain services directly.
"""

import pytest


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark every test under tests/adversarial."""
    for item in items:
        if "adversarial" in item.nodeid.split("/"):
            item.add_marker(pytest.mark.adversarial)
