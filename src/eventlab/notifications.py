"""Watch notification decoding.

A watch on events yields raw notifications: a type and an object. The object
is normally an Event but the apiserver may send a Status instead. This module
decodes the raw object into a tagged payload so the consumer never has to
guess what it received.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

CORE_API_VERSION = "v1"
EVENTS_API_VERSION = "events.k8s.io/v1"


class WatchEventType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


class ObjectReference(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_version: str | None = Field(default=None, alias="apiVersion")
    kind: str | None = None
    namespace: str | None = None
    name: str | None = None
    uid: str | None = None


class EventSeries(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    count: int = 0
    last_observed_time: datetime | None = Field(default=None, alias="lastObservedTime")


class EventRecord(BaseModel):
    """An event, whichever API flavour it was read from.

    core/v1 events fill ``first_seen``, ``last_seen`` and ``count``;
    events.k8s.io/v1 events fill ``event_time`` and, once repeated, ``series``.
    """
    kind: Literal["Event"] = "Event"
    api_version: str = CORE_API_VERSION
    namespace: str | None = None
    name: str | None = None
    involved_object: ObjectReference = Field(default_factory=ObjectReference)
    type: str | None = None
    reason: str | None = None
    message: str | None = None
    action: str | None = None
    first_seen: datetime | None = None
    last_seen: datetime | None = None
    count: int | None = None
    event_time: datetime | None = None
    series: EventSeries | None = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "EventRecord":
        """Build an event record from the JSON form of either Event flavour."""
        metadata = raw.get("metadata") or {}
        api_version = raw.get("apiVersion") or CORE_API_VERSION
        common = {
            "api_version": api_version,
            "namespace": metadata.get("namespace"),
            "name": metadata.get("name"),
            "type": raw.get("type"),
            "reason": raw.get("reason"),
            "action": raw.get("action"),
        }
        if api_version == EVENTS_API_VERSION:
            return cls(
                involved_object=ObjectReference.model_validate(raw.get("regarding") or {}),
                message=raw.get("note"),
                first_seen=raw.get("deprecatedFirstTimestamp"),
                last_seen=raw.get("deprecatedLastTimestamp"),
                count=raw.get("deprecatedCount"),
                event_time=raw.get("eventTime"),
                series=EventSeries.model_validate(raw["series"]) if raw.get("series") else None,
                **common,
            )
        return cls(
            involved_object=ObjectReference.model_validate(raw.get("involvedObject") or {}),
            message=raw.get("message"),
            first_seen=raw.get("firstTimestamp"),
            last_seen=raw.get("lastTimestamp"),
            count=raw.get("count"),
            event_time=raw.get("eventTime"),
            series=EventSeries.model_validate(raw["series"]) if raw.get("series") else None,
            **common,
        )

    def describe(self) -> str:
        """Render the reason, message and timing of the event on one line."""
        if self.api_version == EVENTS_API_VERSION:
            fields = [self.reason, self.message, self.event_time]
            if self.series is not None:
                fields += [self.series.last_observed_time, self.series.count]
        else:
            fields = [self.reason, self.message, self.first_seen, self.last_seen, self.count]
        return " ".join(str(f) for f in fields)


class StatusRecord(BaseModel):
    """A Status object sent in place of an event."""

    kind: Literal["Status"] = "Status"
    code: int | None = None
    reason: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "StatusRecord":
        return cls(
            code=raw.get("code"),
            reason=raw.get("reason"),
            message=raw.get("message"),
            details=raw.get("details"),
        )

    def describe(self) -> str:
        return f"{self.code} {self.reason} {self.message} {self.details}"


class WatchNotification(BaseModel):
    """A single notification received from a watch."""

    type: WatchEventType
    payload: EventRecord | StatusRecord | None = None

    @property
    def is_status(self) -> bool:
        return isinstance(self.payload, StatusRecord)

    @property
    def event(self) -> EventRecord | None:
        """The event carried by the notification, if it carries one."""
        if self.type in (WatchEventType.BOOKMARK, WatchEventType.ERROR):
            return None
        if isinstance(self.payload, EventRecord):
            return self.payload
        return None


def decode(raw_event: dict[str, Any]) -> WatchNotification:
    """Decode a notification yielded by ``kubernetes.watch.Watch.stream``.

    The raw JSON object is used rather than the deserialized model, since the
    deserialized model is always typed as an Event even when a Status was sent.

    Args:
        raw_event: A notification with ``type`` and ``raw_object`` (or ``object``) keys.

    Returns:
        The decoded notification.
    """
    event_type = WatchEventType(raw_event["type"])
    raw = raw_event.get("raw_object")
    if raw is None:
        raw = raw_event.get("object")
    if not isinstance(raw, dict):
        logger.debug(f"Ignoring {event_type.value} notification without a JSON object")
        return WatchNotification(type=event_type)

    kind = raw.get("kind")
    if kind == "Status":
        return WatchNotification(type=event_type, payload=StatusRecord.from_raw(raw))
    if event_type == WatchEventType.BOOKMARK:
        return WatchNotification(type=event_type)
    return WatchNotification(type=event_type, payload=EventRecord.from_raw(raw))
