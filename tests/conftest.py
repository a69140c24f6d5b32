from __future__ import annotations

import pytest

from fakes import FakeWorkflow, make_order


@pytest.fixture
def workflow() -> FakeWorkflow:
    return FakeWorkflow([make_order(9)])
