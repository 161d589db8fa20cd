"""Tests for the SES event history Lambda."""

import json
from unittest.mock import Mock

import pytest

from wraps_cli.infrastructure.lambda_src import event_processor
from wraps_cli.infrastructure.lambda_src.event_processor import DAY_SECONDS, build_item, extract_event, handler

SENT_AT = "2024-03-01T12:00:00.000Z"
SENT_AT_MS = 1709294400000


def _message(event_type="Send", **payload):
    message = {
        "eventType": event_type,
        "mail": {
            "timestamp": SENT_AT,
            "messageId": "msg-1",
            "source": "hello@example.com",
            "destination": ["user@example.org"],
            "commonHeaders": {"subject": "Welcome"},
            "tags": {"campaign": ["launch"]},
        },
    }
    message.update(payload)
    return message


def _sqs_record(message, message_id="sqs-1"):
    return {"messageId": message_id, "body": json.dumps({"detail-type": "SES Email Event", "detail": message})}


class TestExtractEvent:
    def test_send_keeps_tags(self):
        event_type, timestamp, data = extract_event(_message())

        assert event_type == "Send"
        assert timestamp == SENT_AT_MS
        assert data == {"tags": {"campaign": ["launch"]}}

    def test_bounce_uses_its_own_timestamp(self):
        message = _message("Bounce", bounce={
            "bounceType": "Permanent",
            "bounceSubType": "General",
            "bouncedRecipients": [{"emailAddress": "user@example.org"}],
            "timestamp": "2024-03-01T12:00:05.000Z",
            "feedbackId": "fb-1",
        })

        event_type, timestamp, data = extract_event(message)

        assert event_type == "Bounce"
        assert timestamp == SENT_AT_MS + 5000
        assert data["bounceType"] == "Permanent"

    def test_reject_keeps_mail_timestamp(self):
        _, timestamp, data = extract_event(_message("Reject", reject={"reason": "Bad content"}))

        assert timestamp == SENT_AT_MS
        assert data == {"reason": "Bad content"}

    def test_notification_type_is_accepted(self):
        message = _message()
        del message["eventType"]
        message["notificationType"] = "Delivery"

        event_type, _, data = extract_event(message)

        assert event_type == "Delivery"
        assert data == {}

    def test_unknown_event_type(self):
        assert extract_event(_message("Mystery"))[2] == {}


class TestBuildItem:
    def test_item_shape(self):
        now_ms = 1_700_000_000_000

        item = build_item(_message(), "123456789012", 90, now_ms)

        assert item["messageId"] == {"S": "msg-1"}
        assert item["to"] == {"L": [{"S": "user@example.org"}]}
        assert item["subject"] == {"S": "Welcome"}
        assert item["createdAt"] == {"N": str(now_ms)}
        assert json.loads(item["eventData"]["S"])["mail"]["messageId"] == "msg-1"

    def test_expiry_is_in_epoch_seconds(self):
        now_ms = 1_700_000_000_000

        item = build_item(_message(), "123456789012", 30, now_ms)

        assert int(item["expiresAt"]["N"]) == 1_700_000_000 + 30 * DAY_SECONDS

    def test_no_expiry_for_unlimited_retention(self):
        assert "expiresAt" not in build_item(_message(), "123456789012", 0, 1)


class TestHandler:
    @pytest.fixture
    def dynamodb(self, monkeypatch):
        client = Mock()
        monkeypatch.setattr(event_processor, "get_dynamodb", lambda: client)
        monkeypatch.setenv("TABLE_NAME", "wraps-email-history")
        monkeypatch.setenv("AWS_ACCOUNT_ID", "123456789012")
        monkeypatch.setenv("RETENTION_DAYS", "90")
        return client

    def test_stores_each_record(self, dynamodb):
        event = {"Records": [_sqs_record(_message()), _sqs_record(_message("Open", open={}), "sqs-2")]}

        response = handler(event, None)

        assert json.loads(response["body"]) == {"stored": 2}
        assert dynamodb.put_item.call_count == 2
        assert dynamodb.put_item.call_args.kwargs["TableName"] == "wraps-email-history"

    def test_bad_record_does_not_block_batch(self, dynamodb):
        event = {"Records": [{"messageId": "bad", "body": "not json"}, _sqs_record(_message())]}

        response = handler(event, None)

        assert json.loads(response["body"]) == {"stored": 1}

    def test_missing_table_name(self, monkeypatch):
        monkeypatch.delenv("TABLE_NAME", raising=False)
        with pytest.raises(RuntimeError, match="TABLE_NAME"):
            handler({"Records": []}, None)
