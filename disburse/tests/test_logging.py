from __future__ import annotations

import io
import json

from disburse.logging import bind, configure, context, get_logger, trace_scope


def test_json_lines_carry_fields_and_trace():
    out = io.StringIO()
    configure(json=True, level="DEBUG", stream=out)
    log = get_logger("disburse.test", component="unit")

    with trace_scope("abc123", scheme_id=3):
        log.info("funds released", amount=5, name="ignored")

    line = json.loads(out.getvalue().strip().splitlines()[-1])
    assert line["msg"] == "funds released"
    assert line["level"] == "INFO"
    assert line["trace_id"] == "abc123"
    assert line["scheme_id"] == 3
    assert line["amount"] == 5
    assert line["component"] == "unit"
    assert line["logger"] == "disburse.test"


def test_trace_scope_restores_context():
    bind(request="r1")
    with trace_scope() as tid:
        assert context()["trace_id"] == tid
    assert "trace_id" not in context()
    assert context()["request"] == "r1"


def test_level_filters_records():
    out = io.StringIO()
    configure(json=False, level="WARNING", stream=out)
    log = get_logger("disburse.test")
    log.info("quiet")
    log.warning("loud", code="X")
    text = out.getvalue()
    assert "quiet" not in text
    assert "loud" in text and "code=X" in text
