"""Kubernetes client module for the event lab.

This module handles all interactions with the Kubernetes API.
"""

from eventlab.kubernetes.connection import KubernetesConnection
from eventlab.kubernetes.events import (
    CoreEventRecorder,
    EventRecorder,
    SeriesEventRecorder,
    delete_events,
    new_recorder,
)
from eventlab.kubernetes.target import TargetConflictError, TargetError, TargetObject, TargetRef

__all__ = [
    "KubernetesConnection",
    "EventRecorder",
    "CoreEventRecorder",
    "SeriesEventRecorder",
    "new_recorder",
    "delete_events",
    "TargetObject",
    "TargetRef",
    "TargetError",
    "TargetConflictError",
]
