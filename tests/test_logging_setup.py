from __future__ import annotations

import logging
import os

from label_migrator.logging_setup import AUDIT_LOGGER_NAME, configure_audit_logging, configure_file_logging


def _cleanup(*names: str) -> None:
    for name in names:
        lg = logging.getLogger(name)
        for handler in list(lg.handlers):
            lg.removeHandler(handler)
            handler.close()


def test_file_handler_attached_once(tmp_path) -> None:
    try:
        path = configure_file_logging(str(tmp_path), "run.log", logger_names=["lm.test"], level="DEBUG")
        configure_file_logging(str(tmp_path), "run.log", logger_names=["lm.test"], level="DEBUG")

        lg = logging.getLogger("lm.test")
        assert path == os.path.abspath(str(tmp_path / "run.log"))
        assert len([h for h in lg.handlers if hasattr(h, "baseFilename")]) == 1
        assert lg.level == logging.DEBUG

        lg.debug("hello")
        for h in lg.handlers:
            h.flush()
        assert "lm.test DEBUG: hello" in (tmp_path / "run.log").read_text(encoding="utf-8")
    finally:
        _cleanup("lm.test")


def test_unknown_level_falls_back_to_info(tmp_path) -> None:
    try:
        configure_file_logging(str(tmp_path), "x.log", logger_names=["lm.level"], level="LOUD")
        assert logging.getLogger("lm.level").level == logging.INFO
    finally:
        _cleanup("lm.level")


def test_audit_logger_writes_own_file(tmp_path) -> None:
    try:
        audit = configure_audit_logging(str(tmp_path), "audit.log")
        audit.info("Success action=Replace")
        for h in audit.handlers:
            h.flush()

        assert audit.name == AUDIT_LOGGER_NAME
        assert audit.propagate is False
        assert "Success action=Replace" in (tmp_path / "audit.log").read_text(encoding="utf-8")
    finally:
        _cleanup(AUDIT_LOGGER_NAME)
