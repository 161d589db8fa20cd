"""
Lambda handler storing SES events delivered through SQS in DynamoDB.

Each SQS message body is an EventBridge event whose ``detail`` is the SES
event. Records that fail to process are logged and skipped so one bad event
does not block the rest of the batch.
"""
import json
import logging
import os
import time
from datetime import datetime

import boto3

logger = logging.getLogger()
logger.setLevel(logging.INFO)

_dynamodb = None

DAY_SECONDS = 24 * 60 * 60


def get_dynamodb():
    global _dynamodb
    if _dynamodb is None:
        _dynamodb = boto3.client("dynamodb")
    return _dynamodb


# event type -> (payload key, fields kept as additional data, has own timestamp)
EVENT_FIELDS = {
    "Delivery": ("delivery", ["timestamp", "processingTimeMillis", "recipients", "smtpResponse", "remoteMtaIp"], True),
    "Open": ("open", ["timestamp", "userAgent", "ipAddress"], True),
    "Click": ("click", ["timestamp", "link", "linkTags", "userAgent", "ipAddress"], True),
    "Bounce": ("bounce", ["bounceType", "bounceSubType", "bouncedRecipients", "timestamp", "feedbackId"], True),
    "Complaint": ("complaint", ["complainedRecipients", "timestamp", "feedbackId", "complaintFeedbackType",
                                "userAgent"], True),
    "Reject": ("reject", ["reason"], False),
    "Rendering Failure": ("failure", ["errorMessage", "templateName"], False),
    "DeliveryDelay": ("deliveryDelay", ["timestamp", "delayType", "expirationTime", "delayedRecipients"], True),
    "Subscription": ("subscription", ["contactList", "timestamp", "source", "newTopicPreferences",
                                      "oldTopicPreferences"], True),
}


def to_millis(timestamp):
    return int(datetime.fromisoformat(timestamp.replace("Z", "+00:00")).timestamp() * 1000)


def extract_event(message):
    """Return (event_type, event_timestamp_ms, additional_data) for an SES event."""
    event_type = message.get("eventType") or message.get("notificationType")
    mail = message["mail"]
    event_timestamp = to_millis(mail["timestamp"])

    if event_type == "Send":
        return event_type, event_timestamp, {"tags": mail.get("tags", {})}

    if event_type not in EVENT_FIELDS:
        return event_type, event_timestamp, {}

    key, fields, has_timestamp = EVENT_FIELDS[event_type]
    payload = message.get(key)
    if not payload:
        return event_type, event_timestamp, {}

    if has_timestamp and payload.get("timestamp"):
        event_timestamp = to_millis(payload["timestamp"])
    return event_type, event_timestamp, {field: payload.get(field) for field in fields}


def build_item(message, account_id, retention_days, now_ms):
    mail = message["mail"]
    event_type, event_timestamp, additional_data = extract_event(message)

    item = {
        "messageId": {"S": mail["messageId"]},
        "sentAt": {"N": str(event_timestamp)},
        "accountId": {"S": account_id},
        "from": {"S": mail.get("source", "")},
        "to": {"L": [{"S": address} for address in mail.get("destination", [])]},
        "subject": {"S": mail.get("commonHeaders", {}).get("subject", "")},
        "eventType": {"S": event_type or "Unknown"},
        "eventData": {"S": json.dumps(message)},
        "additionalData": {"S": json.dumps(additional_data)},
        "createdAt": {"N": str(now_ms)},
    }
    if retention_days > 0:
        # DynamoDB TTL reads epoch seconds
        item["expiresAt"] = {"N": str(now_ms // 1000 + retention_days * DAY_SECONDS)}
    return item


def handler(event, context):
    table_name = os.environ.get("TABLE_NAME")
    if not table_name:
        raise RuntimeError("TABLE_NAME environment variable not set")

    account_id = os.environ.get("AWS_ACCOUNT_ID", "unknown")
    retention_days = int(os.environ.get("RETENTION_DAYS", "90"))

    stored = 0
    for record in event.get("Records", []):
        try:
            message = json.loads(record["body"])["detail"]
            item = build_item(message, account_id, retention_days, int(time.time() * 1000))
            get_dynamodb().put_item(TableName=table_name, Item=item)
            stored += 1
        except Exception:
            logger.exception("Error processing record %s", record.get("messageId"))

    return {"statusCode": 200, "body": json.dumps({"stored": stored})}
