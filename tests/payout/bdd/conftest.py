import pytest


@pytest.fixture()
def payout():
    """Container for the payout under test and any rejection."""
    return {"id": None, "exc": None}
