from __future__ import annotations

import io
import logging

import pytest

from pgbrowse.logconfig import configure_logging


@pytest.fixture(autouse=True)
def _restore_logger():
    logger = logging.getLogger("pgbrowse")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


def test_configure_logging_routes_package_records() -> None:
    stream = io.StringIO()

    logger = configure_logging("info", handler=logging.StreamHandler(stream))
    logging.getLogger("pgbrowse.session").info("Session ready")
    logging.getLogger("pgbrowse.session").debug("hidden")

    assert logger.level == logging.INFO
    output = stream.getvalue()
    assert "INFO pgbrowse.session: Session ready" in output
    assert "hidden" not in output


def test_configure_logging_replaces_previous_handler() -> None:
    configure_logging("WARNING", handler=logging.StreamHandler(io.StringIO()))
    logger = configure_logging(logging.DEBUG, handler=logging.StreamHandler(io.StringIO()))

    tagged = [handler for handler in logger.handlers if getattr(handler, "_pgbrowse", False)]
    assert len(tagged) == 1
    assert logger.level == logging.DEBUG


def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        configure_logging("chatty")
