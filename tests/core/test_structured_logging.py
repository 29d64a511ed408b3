"""JSON log output: tenancy context must arrive as top-level fields."""

from __future__ import annotations

import json
import logging
import sys

from crm.core.logging import _ContainerFormatter, _JsonFormatter


def _record(msg: str = "test message", args: tuple = ()) -> logging.LogRecord:
    return logging.LogRecord(
        name="crm.services.tenant_resolver",
        level=logging.INFO,
        pathname="tenant_resolver.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )


def test_json_formatter_produces_valid_json() -> None:
    parsed = json.loads(_JsonFormatter().format(_record("Switched %s", ("org",))))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "crm.services.tenant_resolver"
    assert parsed["message"] == "Switched org"
    assert "timestamp" in parsed


def test_json_formatter_promotes_tenant_context() -> None:
    record = _record()
    record.request_id = "abc-123"  # type: ignore[attr-defined]
    record.method = "POST"  # type: ignore[attr-defined]
    record.path = "/v1/organizations/{org_id}/switch"  # type: ignore[attr-defined]
    record.user_id = "u-1"  # type: ignore[attr-defined]
    record.organization_id = "o-1"  # type: ignore[attr-defined]
    record.status_code = 200  # type: ignore[attr-defined]
    record.duration_ms = 12.5  # type: ignore[attr-defined]

    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["request_id"] == "abc-123"
    assert parsed["path"] == "/v1/organizations/{org_id}/switch"
    assert parsed["user_id"] == "u-1"
    assert parsed["organization_id"] == "o-1"
    assert parsed["status_code"] == 200
    assert parsed["duration_ms"] == 12.5


def test_json_formatter_omits_unset_context() -> None:
    record = _record()
    record.user_id = None  # type: ignore[attr-defined]
    parsed = json.loads(_JsonFormatter().format(record))
    assert "user_id" not in parsed
    assert "organization_id" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("test error")
    except ValueError:
        record = _record("Something failed")
        record.exc_info = sys.exc_info()
        output = _JsonFormatter().format(record)

    assert "ValueError: test error" in json.loads(output)["exception"]


def test_container_formatter_is_plain_text() -> None:
    output = _ContainerFormatter().format(_record("server started"))
    assert "INFO" in output
    assert "crm.services.tenant_resolver" in output
    assert not output.lstrip().startswith("{")
