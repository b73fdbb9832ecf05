import io
import json
import logging

from poemsong.logging_utils import (
    RequestContextFilter,
    StructuredFormatter,
    clear_request_context,
    composition_context,
    log_event,
    set_request_context,
)
from poemsong.services.composer import compose


def _capture(logger_name: str, json_output: bool = True):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter(json_output=json_output))
    handler.addFilter(RequestContextFilter())
    logger = logging.getLogger(logger_name)
    logger.addHandler(handler)
    previous_level = logger.level
    logger.setLevel(logging.INFO)
    return stream, handler, logger, previous_level


def _release(handler, logger, previous_level):
    logger.removeHandler(handler)
    logger.setLevel(previous_level)


def test_json_lines_include_event_context_and_fields():
    stream, handler, logger, level = _capture("poemsong.tests.json")
    try:
        set_request_context(request_id="req-1", route="/api/compose", method="POST")
        log_event(logger, "something_happened", count=3, label="봄")
    finally:
        clear_request_context()
        _release(handler, logger, level)

    payload = json.loads(stream.getvalue().strip())
    assert payload["event"] == "something_happened"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "req-1"
    assert payload["route"] == "/api/compose"
    assert payload["composition_id"] == "-"
    assert payload["count"] == 3
    assert payload["label"] == "봄"


def test_text_format_is_key_value():
    stream, handler, logger, level = _capture("poemsong.tests.text", json_output=False)
    try:
        log_event(logger, "plain_event", level=logging.WARNING, table="genre")
    finally:
        _release(handler, logger, level)

    line = stream.getvalue().strip()
    assert "level=WARNING" in line
    assert "event=plain_event" in line
    assert "table=genre" in line


def test_composition_context_tags_and_resets():
    stream, handler, logger, level = _capture("poemsong.tests.context")
    try:
        with composition_context("comp-abc"):
            log_event(logger, "inside")
        log_event(logger, "outside")
    finally:
        _release(handler, logger, level)

    inside, outside = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert inside["composition_id"] == "comp-abc"
    assert outside["composition_id"] == "-"


def test_compose_logs_stage_events_with_composition_id():
    stream, handler, logger, level = _capture("poemsong.services")
    try:
        compose("봄바람이 불어오면\n그때 생각이 나요")
    finally:
        _release(handler, logger, level)

    records = [json.loads(line) for line in stream.getvalue().splitlines()]
    events = [r["event"] for r in records]
    assert "lyrics_analysis_completed" in events
    assert "harmony_generation_completed" in events
    assert "melody_generation_completed" in events
    assert events[-1] == "composition_completed"
    assert len({r["composition_id"] for r in records}) == 1
    assert records[-1]["composition_id"].startswith("comp-")
