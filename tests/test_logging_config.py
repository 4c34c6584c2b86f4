import json
import logging

from app.logging_config import JSONFormatter, LoggerAdapter, mask_phone


def make_record(context=None) -> logging.LogRecord:
    record = logging.LogRecord("leadfunnel.delivery", logging.INFO, __file__, 1, "Delivered 2 message(s)", None, None)
    if context is not None:
        record.context = context
    return record


class TestMaskPhone:
    def test_middle_digits_are_masked(self):
        assert mask_phone("5511987654321") == "5511*****4321"

    def test_short_ids_and_non_strings_pass_through(self):
        assert mask_phone("555") == "555"
        assert mask_phone(None) is None


class TestJSONFormatter:
    def test_phone_numbers_in_context_are_masked(self):
        record = make_record({"to": "5511987654321", "sender": "5511987654321", "chunk": "1/2"})

        line = json.loads(JSONFormatter().format(record))

        assert line["logger"] == "leadfunnel.delivery"
        assert line["context"] == {"to": "5511*****4321", "sender": "5511*****4321", "chunk": "1/2"}
        assert record.context["to"] == "5511987654321"

    def test_masking_can_be_disabled(self):
        record = make_record({"to": "5511987654321"})

        line = json.loads(JSONFormatter(mask_phone_numbers=False).format(record))

        assert line["context"]["to"] == "5511987654321"

    def test_record_without_context(self):
        line = json.loads(JSONFormatter().format(make_record()))

        assert "context" not in line
        assert line["message"] == "Delivered 2 message(s)"


class TestLoggerAdapter:
    def test_call_context_is_merged_over_fixed_context(self):
        adapter = LoggerAdapter(logging.getLogger("leadfunnel.test"), {"sender": "555", "state": "WELCOME"})

        _, kwargs = adapter.process("msg", {"context": {"state": "GENERATING"}})

        assert kwargs["extra"]["context"] == {"sender": "555", "state": "GENERATING"}
