"""Kubernetes events handling module.

This module provides the recorders that emit events against the target
ConfigMap, and the cleanup of those events.

Two recorders exist, one per Events API flavour:

- ``CoreEventRecorder`` writes core/v1 events. Repeats of the same event are
  patched with an incremented ``count``, and once too many similar events
  with distinct messages are seen they are combined into a single record.
- ``SeriesEventRecorder`` writes events.k8s.io/v1 events. Repeats within a
  short window are folded into the ``series`` of the first one.
"""

import abc
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from eventlab.config import EventLabConfig, EventsApi
from eventlab.kubernetes.connection import KubernetesConnection
from eventlab.kubernetes.target import HTTP_NOT_FOUND, TargetRef

logger = logging.getLogger(__name__)

# Number of correlated events remembered by a recorder
DEFAULT_CACHE_SIZE = 4096
# Similar events with distinct messages allowed before they are combined
MAX_SIMILAR_EVENTS = 10
AGGREGATION_WINDOW = timedelta(minutes=10)
COMBINED_MESSAGE_PREFIX = "(combined from similar events): "
# Repeats of an events.k8s.io/v1 event within this window become a series
SERIES_WINDOW = timedelta(minutes=6)


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_time(value: datetime) -> str:
    """Format a timestamp the way the apiserver expects a meta/v1 Time."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_micro_time(value: datetime) -> str:
    """Format a timestamp the way the apiserver expects a meta/v1 MicroTime."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class LRUCache:
    """Bounded mapping that evicts the least recently used entry first."""

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE):
        self.max_size = max_size
        self._data: OrderedDict[Any, Any] = OrderedDict()

    def get(self, key: Any) -> Any | None:
        if key not in self._data:
            return None
        self._data.move_to_end(key)
        return self._data[key]

    def put(self, key: Any, value: Any) -> None:
        self._data[key] = value
        self._data.move_to_end(key)
        while len(self._data) > self.max_size:
            self._data.popitem(last=False)

    def pop(self, key: Any) -> Any | None:
        return self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


@dataclass
class _ObservedEvent:
    """An event already written to the apiserver."""

    name: str
    count: int
    last_observed: datetime


@dataclass
class _SimilarEvents:
    """Distinct messages seen for one similar-key."""

    messages: set[str] = field(default_factory=set)
    last_seen: datetime | None = None


class EventRecorder(abc.ABC):
    """Base class for event recorders.

    Emission is fire-and-forget: failures are logged and never re-queued.
    """

    def __init__(
        self,
        connection: KubernetesConnection,
        component: str,
        clock: Callable[[], datetime] = utc_now,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ):
        """Initialize the recorder.

        Args:
            connection: The Kubernetes connection to use
            component: Component name used to tag emitted events
            clock: Source of the current time
            cache_size: Number of emitted events remembered for correlation
        """
        self.connection = connection
        self.component = component
        self.clock = clock
        self._observed = LRUCache(cache_size)

    def event(
        self,
        target: TargetRef,
        event_type: str,
        reason: str,
        message: str,
        action: str | None = None,
    ) -> bool:
        """Emit an event about the target object.

        Args:
            target: The object the event is about
            event_type: Type of event (Normal or Warning)
            reason: Short machine-readable reason
            message: Human-readable message
            action: What was done, if anything

        Returns:
            True if the apiserver accepted the event, False otherwise.
        """
        logger.info(
            f'Event occurred object="{target.namespace}/{target.name}" kind="{target.KIND}" '
            f'apiVersion="{target.API_VERSION}" type="{event_type}" reason="{reason}" message="{message}"'
        )
        try:
            self._record(target, event_type, reason, message, action)
        except Exception as e:
            logger.warning(f"Failed to record event for {target.KIND} {target.namespace}/{target.name}: {e}")
            return False
        return True

    @abc.abstractmethod
    def _record(
        self, target: TargetRef, event_type: str, reason: str, message: str, action: str | None
    ) -> None:
        """Write the event to the apiserver, creating or patching a record."""
        pass

    @staticmethod
    def _event_name(target: TargetRef) -> str:
        return f"{target.name}.{time.time_ns():x}"

    def _patch_or_forget(self, key: tuple, observed: _ObservedEvent, namespace: str, patch: dict) -> bool:
        """Patch an observed event. Returns False if the record no longer exists."""
        try:
            self._patch(observed.name, namespace, patch)
        except ApiException as e:
            if e.status != HTTP_NOT_FOUND:
                raise
            logger.debug(f"Event {namespace}/{observed.name} is gone, recording a new one")
            self._observed.pop(key)
            return False
        return True

    @abc.abstractmethod
    def _patch(self, name: str, namespace: str, patch: dict) -> None:
        pass


class CoreEventRecorder(EventRecorder):
    """Recorder writing core/v1 events."""

    def __init__(self, *args, max_similar: int = MAX_SIMILAR_EVENTS, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_similar = max_similar
        self._similar = LRUCache(self._observed.max_size)

    def _aggregate(self, similar_key: tuple, message: str, now: datetime) -> tuple[str, tuple]:
        """Combine similar events once too many distinct messages are seen.

        Returns:
            The message to write and the key identifying the record it belongs to.
        """
        similar = self._similar.get(similar_key)
        if similar is None or similar.last_seen is None or now - similar.last_seen > AGGREGATION_WINDOW:
            similar = _SimilarEvents()
        similar.messages.add(message)
        similar.last_seen = now
        self._similar.put(similar_key, similar)

        if len(similar.messages) < self.max_similar:
            return message, similar_key + (message,)
        return COMBINED_MESSAGE_PREFIX + message, similar_key

    def _record(self, target, event_type, reason, message, action):
        now = self.clock()
        similar_key = (target.uid, self.component, self.connection.hostname, event_type, reason)
        message, key = self._aggregate(similar_key, message, now)

        observed = self._observed.get(key)
        if observed is not None:
            patch = {"count": observed.count + 1, "lastTimestamp": format_time(now), "message": message}
            if self._patch_or_forget(key, observed, target.namespace, patch):
                observed.count += 1
                observed.last_observed = now
                return

        body = client.CoreV1Event(
            metadata=client.V1ObjectMeta(name=self._event_name(target), namespace=target.namespace),
            involved_object=target.to_object_reference(),
            reason=reason,
            message=message,
            type=event_type,
            action=action,
            source=client.V1EventSource(component=self.component, host=self.connection.hostname),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
            reporting_component=self.component,
            reporting_instance=self.connection.hostname,
        )
        created = self.connection.core_v1_api.create_namespaced_event(namespace=target.namespace, body=body)
        self._observed.put(key, _ObservedEvent(name=created.metadata.name, count=1, last_observed=now))
        logger.debug(f"Created event {target.namespace}/{created.metadata.name}: {reason}")

    def _patch(self, name, namespace, patch):
        self.connection.core_v1_api.patch_namespaced_event(name=name, namespace=namespace, body=patch)
        logger.debug(f"Patched event {namespace}/{name}: count={patch['count']}")


class SeriesEventRecorder(EventRecorder):
    """Recorder writing events.k8s.io/v1 events."""

    @property
    def reporting_instance(self) -> str:
        return f"{self.component}-{self.connection.hostname}"

    def _record(self, target, event_type, reason, message, action):
        now = self.clock()
        key = (target.uid, self.component, self.reporting_instance, event_type, reason, action, message)

        isomorphic = self._observed.get(key)
        if isomorphic is not None and now - isomorphic.last_observed <= SERIES_WINDOW:
            patch = {"series": {"count": isomorphic.count + 1, "lastObservedTime": format_micro_time(now)}}
            if self._patch_or_forget(key, isomorphic, target.namespace, patch):
                isomorphic.count += 1
                isomorphic.last_observed = now
                return

        body = client.EventsV1Event(
            metadata=client.V1ObjectMeta(name=self._event_name(target), namespace=target.namespace),
            event_time=now,
            reporting_controller=self.component,
            reporting_instance=self.reporting_instance,
            action=action,
            reason=reason,
            regarding=target.to_object_reference(),
            note=message,
            type=event_type,
        )
        created = self.connection.events_v1_api.create_namespaced_event(namespace=target.namespace, body=body)
        self._observed.put(key, _ObservedEvent(name=created.metadata.name, count=1, last_observed=now))
        logger.debug(f"Created event {target.namespace}/{created.metadata.name}: {reason}")

    def _patch(self, name, namespace, patch):
        self.connection.events_v1_api.patch_namespaced_event(name=name, namespace=namespace, body=patch)
        logger.debug(f"Patched event {namespace}/{name}: series={patch['series']['count']}")


def new_recorder(connection: KubernetesConnection, config: EventLabConfig) -> EventRecorder:
    """Create the recorder matching the configured Events API flavour."""
    if config.api == EventsApi.EVENTS:
        return SeriesEventRecorder(connection, config.component)
    return CoreEventRecorder(connection, config.component)


def delete_events(connection: KubernetesConnection, target: TargetRef, timeout: float | None = None) -> bool:
    """Delete every event involving the target object, logging instead of raising on failure.

    Both API flavours share the same storage, so the core/v1 collection covers
    events written by either recorder.

    Args:
        connection: The Kubernetes connection to use
        target: The object whose events are deleted
        timeout: Request timeout in seconds

    Returns:
        True if the deletion was accepted, False otherwise.
    """
    try:
        connection.core_v1_api.delete_collection_namespaced_event(
            namespace=target.namespace,
            field_selector=target.field_selector,
            _request_timeout=timeout,
        )
    except ApiException as e:
        if e.status == HTTP_NOT_FOUND:
            logger.debug(f"No events left for {target.KIND} {target.namespace}/{target.name}")
        else:
            logger.error(f"Failed to delete events for {target.KIND} {target.namespace}/{target.name}: {e}")
        return False
    except Exception as e:
        logger.error(f"Failed to delete events for {target.KIND} {target.namespace}/{target.name}: {e}")
        return False

    logger.info(f"Deleted events for {target.KIND} {target.namespace}/{target.name}")
    return True
