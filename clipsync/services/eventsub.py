"""EventSub webhook message verification.

Twitch signs each delivery with ``sha256=`` followed by the hex
HMAC-SHA256 of ``message_id + timestamp + raw_body``, keyed with the secret
given at subscription time.
"""

import hashlib
import hmac
import logging
import re
from collections.abc import Mapping
from datetime import UTC, datetime

from cachetools import TTLCache

from clipsync.core.exceptions import SignatureInvalidError

logger = logging.getLogger(__name__)

MESSAGE_ID_HEADER = "Twitch-Eventsub-Message-Id"
MESSAGE_TIMESTAMP_HEADER = "Twitch-Eventsub-Message-Timestamp"
MESSAGE_SIGNATURE_HEADER = "Twitch-Eventsub-Message-Signature"
MESSAGE_TYPE_HEADER = "Twitch-Eventsub-Message-Type"

MESSAGE_TYPE_VERIFICATION = "webhook_callback_verification"
MESSAGE_TYPE_NOTIFICATION = "notification"
MESSAGE_TYPE_REVOCATION = "revocation"

# Twitch sends nanosecond precision; datetime accepts at most microseconds
_FRACTION_RE = re.compile(r"\.(\d{6})\d*")


def compute_signature(secret: str, message_id: str, timestamp: str, body: bytes) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        message_id.encode("utf-8") + timestamp.encode("utf-8") + body,
        hashlib.sha256,
    ).hexdigest()
    return f"sha256={digest}"


def verify_signature(
    secret: str, message_id: str, timestamp: str, body: bytes, signature: str
) -> bool:
    """Constant-time comparison of the expected and received signatures."""
    expected = compute_signature(secret, message_id, timestamp, body)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


def parse_message_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 EventSub timestamp. Raises ValueError."""
    normalized = _FRACTION_RE.sub(r".\1", value.strip()).replace("Z", "+00:00")
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class EventSubVerifier:
    """Validates incoming EventSub requests and tracks delivered message ids.

    Twitch retries deliveries with the same message id, so ids seen within
    the freshness window are reported as duplicates.
    """

    def __init__(self, secret: str, max_age_seconds: int = 600):
        self.secret = secret
        self.max_age_seconds = max_age_seconds
        self._seen: TTLCache = TTLCache(maxsize=4096, ttl=max_age_seconds)

    def verify(self, headers: Mapping[str, str], body: bytes) -> None:
        """Raise SignatureInvalidError unless the request is authentic and fresh."""
        message_id = headers.get(MESSAGE_ID_HEADER)
        timestamp = headers.get(MESSAGE_TIMESTAMP_HEADER)
        signature = headers.get(MESSAGE_SIGNATURE_HEADER)
        if not (message_id and timestamp and signature):
            raise SignatureInvalidError("Missing EventSub signature headers")

        if not verify_signature(self.secret, message_id, timestamp, body, signature):
            raise SignatureInvalidError(f"Signature mismatch for message {message_id}")

        try:
            sent_at = parse_message_timestamp(timestamp)
        except ValueError:
            raise SignatureInvalidError(f"Unparsable message timestamp: {timestamp}") from None

        age = (datetime.now(UTC) - sent_at).total_seconds()
        if age > self.max_age_seconds:
            raise SignatureInvalidError(f"Message {message_id} is {int(age)}s old")

    def is_duplicate(self, message_id: str) -> bool:
        """Record *message_id*; True if it was already recorded."""
        if message_id in self._seen:
            return True
        self._seen[message_id] = True
        return False
