"""Event producer module.

This module emits events against the target ConfigMap at a fixed interval
and cleans up after itself on shutdown.
"""

import logging
import threading

from eventlab.config import EventLabConfig
from eventlab.kubernetes.connection import KubernetesConnection
from eventlab.kubernetes.events import EventRecorder, delete_events, new_recorder
from eventlab.kubernetes.target import TargetObject, TargetRef

logger = logging.getLogger(__name__)


class Producer:
    """Periodic event emitter.

    The target ConfigMap is created when the producer starts and, together
    with every event involving it, deleted when it stops.
    """

    def __init__(
        self,
        config: EventLabConfig,
        connection: KubernetesConnection,
        recorder: EventRecorder | None = None,
    ):
        """Initialize the producer.

        Args:
            config: The configuration for the producer.
            connection: The Kubernetes connection to use.
            recorder: The recorder used to emit events. If None, one matching config.api is created.
        """
        self.config = config
        self.connection = connection
        self.recorder = recorder or new_recorder(connection, config)
        self.target = TargetObject(connection, config.target_namespace, config.target_name)
        self.target_ref: TargetRef | None = None
        self.emitted = 0

    def start(self) -> TargetRef:
        """Create the target ConfigMap.

        Raises:
            TargetError: If the ConfigMap cannot be created. Nothing needs cleaning up then.
        """
        self.target_ref = self.target.create()
        return self.target_ref

    def emit(self) -> bool:
        """Emit the next event, suffixing the message with the emission counter."""
        message = f"{self.config.message} {self.emitted}"
        self.emitted += 1
        return self.recorder.event(
            self.target_ref,
            self.config.event_type,
            self.config.reason,
            message,
            action=self.config.action,
        )

    def run(self, stop_event: threading.Event, max_events: int | None = None) -> int:
        """Run the emission loop until stopped, then clean up.

        Every interval either the timer or the stop event fires first: a
        timer tick emits one event, a stop ends the loop.

        Args:
            stop_event: Cancellation token, set on interrupt or terminate.
            max_events: Stop after this many events. None runs until stop_event is set.

        Returns:
            The number of emitted events.
        """
        self.start()
        logger.info(
            f"Emitting {self.config.reason} events against ConfigMap "
            f"{self.target_ref.namespace}/{self.target_ref.name} every {self.config.interval}s"
        )
        try:
            while max_events is None or self.emitted < max_events:
                if stop_event.wait(self.config.interval):
                    logger.info("Stop requested, shutting down")
                    break
                self.emit()
            else:
                logger.info(f"Emitted {self.emitted} events, stopping")
        finally:
            self.cleanup()
        return self.emitted

    def cleanup(self) -> None:
        """Delete the events involving the target, then the target itself.

        Failures are logged and never raised; calling this again is harmless.
        """
        if self.target_ref is None:
            return

        timeout = self.config.cleanup_timeout
        events_deleted = delete_events(self.connection, self.target_ref, timeout=timeout)
        target_deleted = self.target.delete(self.target_ref, timeout=timeout)
        if events_deleted and target_deleted:
            logger.info("Cleaned up residual resources successfully")
