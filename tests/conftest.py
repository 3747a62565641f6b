import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--no-large",
        action="store_true",
        default=False,
        help="Skip tests that decode multi-megabyte payloads.",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "large: mark test as decoding a large payload (use --no-large to skip)")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--no-large"):
        # --no-large not given: run large tests
        return
    skip_large = pytest.mark.skip(reason="--no-large option used")
    for item in items:
        if "large" in item.keywords:
            item.add_marker(skip_large)
