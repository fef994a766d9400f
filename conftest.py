import pytest

from forge import storage


@pytest.fixture(autouse=True)
def clean_test_data(tmp_path):
    """Point storage at a fresh data dir before every test."""
    storage.init_storage(tmp_path / "data")
    yield
