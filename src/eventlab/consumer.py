"""Event consumer module.

This module watches events in a namespace and prints the ones whose reason
matches the configured filter.
"""

import logging
import sys
from collections.abc import Callable
from typing import TextIO

from kubernetes import watch
from kubernetes.watch.watch import iter_resp_lines

from eventlab.config import EventLabConfig, EventsApi
from eventlab.kubernetes.connection import KubernetesConnection
from eventlab.notifications import WatchNotification, decode

logger = logging.getLogger(__name__)


class Consumer:
    """Consume-and-filter loop over an event watch."""

    def __init__(
        self,
        config: EventLabConfig,
        connection: KubernetesConnection,
        out: TextIO | None = None,
        watcher: watch.Watch | None = None,
    ):
        """Initialize the consumer.

        Args:
            config: The configuration for the consumer.
            connection: The Kubernetes connection to use.
            out: Where matching events are printed. Defaults to stdout.
            watcher: The watch used to decode notifications. A new one is created if None.
        """
        self.config = config
        self.connection = connection
        self.out = out or sys.stdout
        self.watcher = watcher or watch.Watch()
        self.received = 0

    def _list_func(self) -> Callable:
        if self.config.api == EventsApi.EVENTS:
            return self.connection.events_v1_api.list_namespaced_event
        return self.connection.core_v1_api.list_namespaced_event

    def handle(self, notification: WatchNotification) -> str | None:
        """Render a notification, or return None if it must not be printed.

        Status payloads are always rendered. Events are rendered only when
        their reason matches the filter.
        """
        if notification.is_status:
            return notification.payload.describe()

        event = notification.event
        if event is None:
            return None
        if event.reason != self.config.reason:
            return None
        return event.describe()

    def _print(self, line: str) -> None:
        print(line, file=self.out, flush=True)

    def run(self) -> int:
        """Watch events until the apiserver closes the watch.

        A single watch request is made and never resumed. ERROR notifications
        carrying a Status are printed like any other status payload.

        Returns:
            The number of notifications received.

        Raises:
            ApiException: If the watch cannot be opened.
        """
        namespace = self.config.event_namespace
        logger.info(f"Watching {self.config.api.value} events in namespace {namespace} for reason {self.config.reason}")

        resp = self._list_func()(namespace=namespace, watch=True, _preload_content=False)
        try:
            for data in iter_resp_lines(resp):
                raw_event = self.watcher.unmarshal_event(data, None)
                if raw_event is None:
                    continue
                self.received += 1
                line = self.handle(decode(raw_event))
                if line is not None:
                    self._print(line)
        finally:
            resp.close()
            resp.release_conn()

        logger.info(f"Watch closed by the apiserver after {self.received} notifications")
        return self.received
