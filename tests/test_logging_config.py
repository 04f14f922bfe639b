import json
import logging
import sys

from bantuanku_bot.logging_config import JSONFormatter, get_logger, mask_phone


def _record(msg="Pesan masuk", context=None, exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord("bantuanku.test", logging.INFO, __file__, 1, msg, None, exc_info)
    if context is not None:
        record.context = context
    return record


class TestMaskPhone:
    def test_masks_middle_digits(self):
        assert mask_phone("6281234567890") == "6281*****7890"

    def test_short_values_unchanged(self):
        assert mask_phone("12345") == "12345"
        assert mask_phone(None) is None


class TestJSONFormatter:
    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "bantuanku.test"
        assert entry["msg"] == "Pesan masuk"
        assert "context" not in entry

    def test_promotes_and_masks_phone(self):
        record = _record(context={"phone": "6281234567890", "message_id": "wamid-1", "flow": "zakat"})
        entry = json.loads(JSONFormatter().format(record))

        assert entry["phone"] == "6281*****7890"
        assert entry["message_id"] == "wamid-1"
        assert entry["context"] == {"flow": "zakat"}

    def test_masking_can_be_disabled(self):
        record = _record(context={"to": "6281234567890"})
        entry = json.loads(JSONFormatter(mask_phones=False).format(record))
        assert entry["context"]["to"] == "6281234567890"

    def test_caller_context_not_mutated(self):
        context = {"phone": "6281234567890"}
        JSONFormatter().format(_record(context=context))
        assert context == {"phone": "6281234567890"}

    def test_exception_included(self):
        try:
            raise RuntimeError("gateway down")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert "gateway down" in entry["exception"]


def test_get_logger_prefix():
    assert get_logger("whatsapp").name == "bantuanku.whatsapp"
