"""Configuration module for the event lab.

This module handles the configuration of the producer and consumer through
environment variables.
"""
import os
from enum import Enum

from pydantic import BaseModel, Field, field_validator

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"


def default_kubeconfig() -> str | None:
    """Return the per-user kubeconfig path, or None when there is none.

    None lets the connection fall back to in-cluster configuration.
    """
    home = os.path.expanduser("~")
    if not home or home == "~":
        return None
    path = os.path.join(home, ".kube", "config")
    return path if os.path.isfile(path) else None


class EventsApi(str, Enum):
    """Flavour of the Kubernetes Events API to talk to.

    core/v1 events carry a count and first/last timestamps, events.k8s.io/v1
    events carry an event time and an optional series.
    """
    CORE = "core"
    EVENTS = "events"


class EventLabConfig(BaseModel):
    """Configuration class for the event lab.

    Attributes:
        kubeconfig: Path to the kubeconfig file. None means in-cluster or client defaults.
        target_namespace: Namespace of the ConfigMap events are attached to.
        target_name: Name of the ConfigMap events are attached to.
        event_namespace: Namespace the consumer watches.
        reason: Reason of emitted events, and the consumer's filter.
        action: Action of emitted events.
        event_type: Type of emitted events (Normal or Warning).
        message: Message prefix of emitted events; a counter is appended.
        component: Component name used to tag emitted events.
        interval: Seconds between two emitted events.
        api: Which Events API flavour to use.
        cleanup_timeout: Request timeout in seconds for shutdown deletes.
    """
    kubeconfig: str | None = Field(default_factory=default_kubeconfig)
    target_namespace: str = "default"
    target_name: str = "k8s-event-lab"
    event_namespace: str = "default"
    reason: str = "Testing"
    action: str = "NOP"
    event_type: str = EVENT_TYPE_WARNING
    message: str = "Event Message"
    component: str = "k8s.io/event-lab"
    interval: float = 1.0
    api: EventsApi = EventsApi.CORE
    cleanup_timeout: float = 10.0

    @field_validator("event_type")
    def validate_event_type(cls, v):
        """Validate that the event type is one Kubernetes accepts"""
        if v not in (EVENT_TYPE_NORMAL, EVENT_TYPE_WARNING):
            raise ValueError(f"Event type must be {EVENT_TYPE_NORMAL} or {EVENT_TYPE_WARNING}, got {v!r}")
        return v

    @field_validator("interval", "cleanup_timeout")
    def validate_positive(cls, v):
        """Validate that durations are strictly positive"""
        if v <= 0:
            raise ValueError("Duration must be greater than zero")
        return v

    @field_validator("reason", "target_name")
    def validate_not_empty(cls, v):
        if not v.strip():
            raise ValueError("Value must not be empty")
        return v

    @classmethod
    def from_env(cls):
        """Create a config instance from environment variables."""
        kubeconfig = os.getenv("EVENTLAB_KUBECONFIG") or default_kubeconfig()

        return cls(
            kubeconfig=kubeconfig,
            target_namespace=os.getenv("EVENTLAB_TARGET_NAMESPACE", "default"),
            target_name=os.getenv("EVENTLAB_TARGET_NAME", "k8s-event-lab"),
            event_namespace=os.getenv("EVENTLAB_EVENT_NAMESPACE", "default"),
            reason=os.getenv("EVENTLAB_REASON", "Testing"),
            action=os.getenv("EVENTLAB_ACTION", "NOP"),
            event_type=os.getenv("EVENTLAB_EVENT_TYPE", EVENT_TYPE_WARNING),
            message=os.getenv("EVENTLAB_MESSAGE", "Event Message"),
            component=os.getenv("EVENTLAB_COMPONENT", "k8s.io/event-lab"),
            interval=float(os.getenv("EVENTLAB_INTERVAL", "1")),
            api=EventsApi(os.getenv("EVENTLAB_API", "core").lower()),
            cleanup_timeout=float(os.getenv("EVENTLAB_CLEANUP_TIMEOUT", "10")),
        )
