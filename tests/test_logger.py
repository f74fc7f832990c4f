import io
import json
import logging

from storefront.logger import JSONFormatter, StructuredLogger
from storefront.utils.audit import log_audit_event


def make_logger(name: str) -> tuple[StructuredLogger, io.StringIO]:
    stream = io.StringIO()
    return StructuredLogger(name=name, level=logging.DEBUG, stream=stream, log_file=""), stream


class TestStructuredLogger:
    def test_emits_json_with_extra(self):
        log, stream = make_logger("storefront.tests.json")

        log.info("Signed in %s", "ana", extra={"event": "LOGIN", "user_id": "u1"})

        entry = json.loads(stream.getvalue().splitlines()[-1])
        assert entry["level"] == "INFO"
        assert entry["logger_name"] == "storefront.tests.json"
        assert entry["message"] == "Signed in ana"
        assert entry["extra"] == {"event": "LOGIN", "user_id": "u1"}

    def test_exception_is_serialised(self):
        log, stream = make_logger("storefront.tests.exc")

        try:
            raise RuntimeError("boom")
        except RuntimeError:
            log.error("failed", exc_info=True)

        entry = json.loads(stream.getvalue().splitlines()[-1])
        assert "RuntimeError: boom" in entry["exception"]
        assert "extra" not in entry

    def test_same_name_does_not_duplicate_handlers(self):
        first, _ = make_logger("storefront.tests.dup")
        second, _ = make_logger("storefront.tests.dup")
        assert len(second.logger.handlers) == len(first.logger.handlers) == 1

    def test_file_handler(self, tmp_path):
        path = tmp_path / "logs" / "storefront.log"
        log = StructuredLogger(name="storefront.tests.file", stream=io.StringIO(), log_file=str(path))

        log.warning("to disk")
        for handler in log.logger.handlers:
            handler.flush()

        assert json.loads(path.read_text().splitlines()[-1])["message"] == "to disk"


class TestAuditEvent:
    def test_audit_event_logged(self):
        log, stream = make_logger("storefront.tests.audit")

        event = log_audit_event(
            logger=log,
            action="UPDATE_ROLE",
            entity_type="Profile",
            entity_id="u2",
            user_id="u1",
            details={"old_role": "customer", "new_role": "staff"},
        )

        entry = json.loads(stream.getvalue().splitlines()[-1])
        assert entry["extra"]["action"] == "UPDATE_ROLE"
        payload = json.loads(entry["message"].removeprefix("AUDIT: "))
        assert payload["details"]["new_role"] == "staff"
        assert event.entity_id == "u2"

    def test_formatter_standalone(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", (), None)
        assert json.loads(JSONFormatter().format(record))["message"] == "hello"
