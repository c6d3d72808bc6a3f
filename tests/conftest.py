import os
from pathlib import Path

import pytest

_DIRECTORY_MARKERS = {
    "/domain/": "domain",
    "/application/": "application",
    "/gateway/": "gateway",
    "/infrastructure/": "infrastructure",
    "/integration/": "integration",
    "/bdd/": "bdd",
}


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config environment before the domain is imported and initialized."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        for fragment, marker in _DIRECTORY_MARKERS.items():
            if fragment in test_path:
                item.add_marker(getattr(pytest.mark, marker))
                break

        # Integration tests are often slower
        if "/integration/" in test_path and not any(m.name == "fast" for m in item.iter_markers()):
            item.add_marker(pytest.mark.slow)
