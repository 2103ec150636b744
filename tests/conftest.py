import logging

import pytest

import pdedomain as pd


def pytest_configure(config):
    config.addinivalue_line("markers", "level_1: quick core tests")
    config.addinivalue_line("markers", "level_2: intermediate tests (symbolic derivation)")


@pytest.fixture(scope="function", autouse=True)
def clean_lambdify_cache():
    """
    Every test starts with an empty lambdify cache, so that evaluation
    results never depend on functions compiled by an earlier test.
    """
    pd.function.clear_lambdify_cache()
    yield
    pd.function.clear_lambdify_cache()


@pytest.fixture
def domain():
    return pd.Domain("test_domain")


@pytest.fixture
def pdedomain_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="pdedomain")
    return caplog
