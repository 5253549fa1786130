import logging

import turnsense.diagnostics as diagnostics


def test_debug_enabled(monkeypatch):
    monkeypatch.setenv("TURNSENSE_DEBUG", "yes")
    assert diagnostics.debug_enabled() is True
    monkeypatch.setenv("TURNSENSE_DEBUG", "0")
    assert diagnostics.debug_enabled() is False


def test_log_debug_attaches_exception(caplog):
    caplog.set_level(logging.DEBUG, logger="turnsense")
    try:
        raise ValueError("bad value")
    except ValueError as e:
        diagnostics.log_debug("hook", "parse failed", e)
    record = caplog.records[-1]
    assert record.name == "turnsense.hook"
    assert "parse failed: bad value" in record.getMessage()
    assert record.exc_info is not None


def test_setup_component_logging_is_idempotent(tmp_path, monkeypatch):
    monkeypatch.setattr(diagnostics, "_LOG_SETUP", set())
    before = list(diagnostics.log.handlers)
    try:
        first = diagnostics.setup_component_logging("unit", tmp_path / "logs")
        second = diagnostics.setup_component_logging("unit", tmp_path / "logs")
        assert first == second == tmp_path / "logs" / "unit.log"
        assert len(diagnostics.log.handlers) == len(before) + 1

        logging.getLogger("turnsense.unit").info("hello from test")
        for handler in diagnostics.log.handlers:
            handler.flush()
        assert "hello from test" in first.read_text(encoding="utf-8")
    finally:
        for handler in list(diagnostics.log.handlers):
            if handler not in before:
                diagnostics.log.removeHandler(handler)
                handler.close()
