"""
Realtime channel message encoding and decoding.

Frames are JSON objects on a Phoenix channel socket:
    {"topic": str, "event": str, "payload": dict, "ref": str | null}
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

PHOENIX_TOPIC = "phoenix"
TOPIC_PREFIX = "realtime:"


class ChannelEvent(str, Enum):
    """Channel events used by the change feed."""

    JOIN = "phx_join"
    LEAVE = "phx_leave"
    REPLY = "phx_reply"
    ERROR = "phx_error"
    CLOSE = "phx_close"
    HEARTBEAT = "heartbeat"
    ACCESS_TOKEN = "access_token"
    POSTGRES_CHANGES = "postgres_changes"
    SYSTEM = "system"


@dataclass
class RealtimeMessage:
    """Decoded channel frame."""

    topic: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)
    ref: Optional[str] = None

    @property
    def is_reply(self) -> bool:
        return self.event == ChannelEvent.REPLY.value

    @property
    def reply_ok(self) -> bool:
        """True for a phx_reply with status "ok"."""
        return self.is_reply and self.payload.get("status") == "ok"

    @property
    def change(self) -> Optional[dict[str, Any]]:
        """Change record carried by a postgres_changes frame."""
        if self.event != ChannelEvent.POSTGRES_CHANGES.value:
            return None
        data = self.payload.get("data")
        return data if isinstance(data, dict) else None


def topic_for(name: str) -> str:
    """Channel topic for a subscription name."""
    if name.startswith(TOPIC_PREFIX):
        return name
    return f"{TOPIC_PREFIX}{name}"


class RealtimeCodec:
    """
    Encodes and decodes realtime channel frames.

    Every outgoing frame gets a fresh numeric ref so replies can be matched.
    """

    def __init__(self) -> None:
        self._ref_counter = 0

    def _next_ref(self) -> str:
        self._ref_counter += 1
        return str(self._ref_counter)

    def _encode(self, topic: str, event: ChannelEvent, payload: dict[str, Any]) -> tuple[str, str]:
        ref = self._next_ref()
        frame = {"topic": topic, "event": event.value, "payload": payload, "ref": ref}
        return json.dumps(frame, separators=(",", ":")), ref

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def encode_join(
        self,
        topic: str,
        changes: list[dict[str, Any]],
        access_token: Optional[str] = None,
    ) -> tuple[str, str]:
        """
        Encode phx_join subscribing to database changes.

        Args:
            topic: Channel topic ("realtime:<name>")
            changes: postgres_changes filter objects
            access_token: User JWT; row-level access is evaluated against it

        Returns:
            (frame text, ref)
        """
        payload: dict[str, Any] = {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": changes,
            }
        }
        if access_token:
            payload["access_token"] = access_token
        return self._encode(topic, ChannelEvent.JOIN, payload)

    def encode_leave(self, topic: str) -> tuple[str, str]:
        """Encode phx_leave."""
        return self._encode(topic, ChannelEvent.LEAVE, {})

    def encode_heartbeat(self) -> tuple[str, str]:
        """Encode socket heartbeat."""
        return self._encode(PHOENIX_TOPIC, ChannelEvent.HEARTBEAT, {})

    def encode_access_token(self, topic: str, access_token: str) -> tuple[str, str]:
        """Encode a token update for an already joined channel."""
        return self._encode(topic, ChannelEvent.ACCESS_TOKEN, {"access_token": access_token})

    # -------------------------------------------------------------------------
    # Decoding
    # -------------------------------------------------------------------------

    def decode(self, data: str | bytes) -> Optional[RealtimeMessage]:
        """
        Decode one frame.

        Returns:
            RealtimeMessage, or None if the frame is malformed
        """
        try:
            frame = json.loads(data)
        except (ValueError, TypeError) as e:
            logger.warning(f"Dropping undecodable frame: {e}")
            return None

        if not isinstance(frame, dict) or "topic" not in frame or "event" not in frame:
            logger.warning(f"Dropping frame without topic/event: {str(frame)[:100]}")
            return None

        payload = frame.get("payload")
        ref = frame.get("ref")
        return RealtimeMessage(
            topic=str(frame["topic"]),
            event=str(frame["event"]),
            payload=payload if isinstance(payload, dict) else {},
            ref=str(ref) if ref is not None else None,
        )
