import pytest

from fakes import Backend


@pytest.fixture
def backend():
    return Backend()
