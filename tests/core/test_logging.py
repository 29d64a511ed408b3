from __future__ import annotations

import logging

import pytest

from crm.core.logging import (
    _ContainerFormatter,
    _RequestContextFilter,
    organization_id_var,
    request_id_var,
    setup_logging,
    user_id_var,
)


def _record(level: int = logging.INFO, msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="crm.test",
        level=level,
        pathname="svc.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("unknown-level")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_installs_single_filtered_handler() -> None:
    setup_logging("info")
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert any(isinstance(f, _RequestContextFilter) for f in handlers[0].filters)


def test_setup_logging_quiets_sql_echo_at_debug() -> None:
    setup_logging("debug")
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger("uvicorn").level == logging.WARNING


def test_context_filter_copies_context_vars() -> None:
    tokens = (
        request_id_var.set("req-1"),
        user_id_var.set("user-1"),
        organization_id_var.set("org-1"),
    )
    try:
        record = _record()
        assert _RequestContextFilter().filter(record) is True
    finally:
        organization_id_var.reset(tokens[2])
        user_id_var.reset(tokens[1])
        request_id_var.reset(tokens[0])

    assert record.request_id == "req-1"  # type: ignore[attr-defined]
    assert record.user_id == "user-1"  # type: ignore[attr-defined]
    assert record.organization_id == "org-1"  # type: ignore[attr-defined]


def test_context_filter_keeps_explicit_extra() -> None:
    token = organization_id_var.set("from-context")
    try:
        record = _record()
        record.organization_id = "explicit"  # type: ignore[attr-defined]
        _RequestContextFilter().filter(record)
    finally:
        organization_id_var.reset(token)
    assert record.organization_id == "explicit"  # type: ignore[attr-defined]


def test_formatter_location_only_for_warnings_and_up() -> None:
    fmt = _ContainerFormatter()
    assert "[svc.py:" not in fmt.format(_record(logging.INFO))
    assert "[svc.py:42]" in fmt.format(_record(logging.WARNING, "denied"))
    assert "[svc.py:42]" in fmt.format(_record(logging.ERROR, "broke"))
