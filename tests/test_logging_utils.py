from __future__ import annotations

import json
import logging
import unittest
from datetime import date

from app.logging_utils import JsonFormatter, RequestContextFilter, bind_request_context, reset_request_context
from app.models import AttendanceType


def _record(**extra) -> logging.LogRecord:  # type: ignore[no-untyped-def]
    record = logging.LogRecord("app.attendance", logging.INFO, __file__, 10, "attendance_mark_denied", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class JsonFormatterTests(unittest.TestCase):
    def test_extra_fields_are_serialized(self) -> None:
        payload = json.loads(JsonFormatter().format(_record(mark_type=AttendanceType.IN, day=date(2026, 3, 10))))

        self.assertEqual(payload["event"], "attendance_mark_denied")
        self.assertEqual(payload["logger"], "app.attendance")
        self.assertEqual(payload["mark_type"], "IN")
        self.assertEqual(payload["day"], "2026-03-10")

    def test_secret_fields_are_masked(self) -> None:
        payload = json.loads(JsonFormatter().format(_record(password="secreto1", email="ana@example.com")))

        self.assertEqual(payload["password"], "***")
        self.assertEqual(payload["email"], "ana@example.com")


class RequestContextFilterTests(unittest.TestCase):
    def test_bound_request_id_is_stamped_on_records(self) -> None:
        token = bind_request_context(request_id="req-42", path="/api/attendance/marks")
        try:
            record = _record(user_id=10)
            RequestContextFilter().filter(record)
        finally:
            reset_request_context(token)

        self.assertEqual(record.request_id, "req-42")  # type: ignore[attr-defined]
        self.assertEqual(record.path, "/api/attendance/marks")  # type: ignore[attr-defined]

    def test_explicit_values_are_kept(self) -> None:
        token = bind_request_context(request_id="req-42")
        try:
            kept = _record(request_id="req-explicit")
            filled = _record(request_id=None)
            RequestContextFilter().filter(kept)
            RequestContextFilter().filter(filled)
        finally:
            reset_request_context(token)

        self.assertEqual(kept.request_id, "req-explicit")  # type: ignore[attr-defined]
        self.assertEqual(filled.request_id, "req-42")  # type: ignore[attr-defined]

    def test_context_is_cleared_after_reset(self) -> None:
        token = bind_request_context(request_id="req-42")
        reset_request_context(token)

        record = _record()
        RequestContextFilter().filter(record)

        self.assertFalse(hasattr(record, "request_id"))


if __name__ == "__main__":
    unittest.main()
