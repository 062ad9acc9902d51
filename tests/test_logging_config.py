from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from logging_config import ContextualFormatter
from services.ingestion import IngestOutcome


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("services.ingestion", logging.INFO, __file__, 1, "Ignored duplicate", None, None)
    record.created = 0.0
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_extras_are_appended_in_configured_order() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["device", "outcome"])

    line = formatter.format(_record(outcome=IngestOutcome.duplicate, device="mydevice", topic="ignored"))

    assert line == "Ignored duplicate | device=mydevice outcome=duplicate"


def test_datetimes_are_rendered_as_utc_instants() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["timestamp"])
    local = datetime(2024, 5, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert formatter.format(_record(timestamp=local)).endswith("timestamp=2024-05-01T12:00:00Z")


def test_values_with_spaces_are_quoted() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["reason", "device"])

    line = formatter.format(_record(reason='temp: Input should be a "number"', device=""))

    assert line == 'Ignored duplicate | reason="temp: Input should be a \\"number\\"" device=""'


def test_missing_extras_leave_message_untouched() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    assert formatter.format(_record()) == "Ignored duplicate"


def test_asctime_is_utc() -> None:
    formatter = ContextualFormatter(fmt="%(asctime)sZ %(message)s", datefmt="%Y-%m-%dT%H:%M:%S")

    assert formatter.format(_record()).startswith("1970-01-01T00:00:00Z ")
