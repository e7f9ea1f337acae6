import os
from pathlib import Path

import pytest


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Pin the environment to ``test``, then initialize the checkout domain and
    push its domain context. The activated domain can then be referred to
    elsewhere as `current_domain`.
    """
    os.environ["CHECKOUT_ENV"] = "test"

    from checkout.domain import init_domain

    init_domain().domain_context().push()


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(autouse=True)
def checkout_db(tmp_path):
    """Fresh file-backed SQLite database per test.

    A file (not ``:memory:``) lets worker threads in the concurrency tests
    open their own connections to the same database.
    """
    from checkout.config import CheckoutSettings, reset_settings, set_settings
    from checkout.notification import reset_notifier
    from checkout.payment import reset_gateway
    from checkout.utils.db import dispose_db, drop_db, init_db, setup_db

    database_uri = f"sqlite:///{tmp_path / 'checkout.db'}"
    set_settings(CheckoutSettings(environment="test", database_uri=database_uri))
    init_db(database_uri)
    setup_db()

    yield database_uri

    # Clear all infrastructure
    drop_db()
    dispose_db()
    reset_settings()
    reset_notifier()
    reset_gateway()
