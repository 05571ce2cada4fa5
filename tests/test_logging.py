import logging

from geonear.common.logging import PathFilter, setup_logging


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, message, None, None)


def test_path_filter_drops_health_checks_only():
    access_filter = PathFilter(["/api/health"])

    assert access_filter.filter(_record('127.0.0.1 - "GET /api/health HTTP/1.1" 200')) is False
    assert access_filter.filter(_record('127.0.0.1 - "POST /api/nearby HTTP/1.1" 200')) is True


def test_setup_logging_attaches_filter_to_access_log():
    access = logging.getLogger("uvicorn.access")
    before = list(access.filters)
    try:
        setup_logging("debug")
        added = [item for item in access.filters if item not in before]
        assert len(added) == 1
        assert isinstance(added[0], PathFilter)
    finally:
        access.filters[:] = before
