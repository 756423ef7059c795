"""Tests for the consumer module."""

import io
import json
import unittest
from unittest import mock

from kubernetes import watch
from kubernetes.client.exceptions import ApiException

from eventlab.config import EventLabConfig, EventsApi
from eventlab.consumer import Consumer
from eventlab.kubernetes.connection import KubernetesConnection


def core_event(reason, message="Event Message 0", event_type="ADDED", resource_version="5"):
    return {
        "type": event_type,
        "object": {
            "kind": "Event",
            "apiVersion": "v1",
            "metadata": {"name": "k8s-event-lab.17c", "namespace": "default", "resourceVersion": resource_version},
            "involvedObject": {"kind": "ConfigMap", "name": "k8s-event-lab", "uid": "uid-1234"},
            "reason": reason,
            "message": message,
            "type": "Warning",
            "firstTimestamp": "2024-05-01T12:00:00Z",
            "lastTimestamp": "2024-05-01T12:00:00Z",
            "count": 1,
        },
    }


class FakeWatchResponse:
    """An unpreloaded watch response that ends after the given notifications."""

    def __init__(self, notifications):
        self.data = b"".join(json.dumps(n).encode() + b"\n" for n in notifications)
        self.closed = False
        self.released = False

    def stream(self, amt=None, decode_content=False):
        yield self.data

    def read_chunked(self, decode_content=False):
        yield self.data

    def close(self):
        self.closed = True

    def release_conn(self):
        self.released = True


class TestConsumer(unittest.TestCase):
    """Test cases for the Consumer class."""

    def setUp(self):
        """Set up test fixtures."""
        self.config = EventLabConfig(kubeconfig=None, reason="Testing")
        self.connection = mock.Mock(spec=KubernetesConnection)
        self.connection.core_v1_api = mock.Mock()
        self.connection.events_v1_api = mock.Mock()
        self.out = io.StringIO()
        self.consumer = Consumer(self.config, self.connection, out=self.out, watcher=watch.Watch())

    def serve(self, *notifications, api=None):
        """Make the list function answer the watch request with the given notifications."""
        api = api or self.connection.core_v1_api
        response = FakeWatchResponse(notifications)
        api.list_namespaced_event.return_value = response
        return response

    def lines(self):
        return self.out.getvalue().splitlines()

    def test_watches_core_events_in_namespace(self):
        self.serve()

        self.consumer.run()

        self.connection.core_v1_api.list_namespaced_event.assert_called_once_with(
            namespace="default", watch=True, _preload_content=False
        )

    def test_watches_events_api(self):
        config = EventLabConfig(kubeconfig=None, api=EventsApi.EVENTS, event_namespace="lab")
        consumer = Consumer(config, self.connection, out=self.out, watcher=watch.Watch())
        self.serve(api=self.connection.events_v1_api)

        consumer.run()

        self.connection.events_v1_api.list_namespaced_event.assert_called_once_with(
            namespace="lab", watch=True, _preload_content=False
        )
        self.connection.core_v1_api.list_namespaced_event.assert_not_called()

    def test_returns_when_the_apiserver_closes_the_watch(self):
        """Test that the end of the response ends the run without watching again."""
        response = self.serve(core_event("Testing", resource_version="5"))

        received = self.consumer.run()

        self.assertEqual(received, 1)
        self.connection.core_v1_api.list_namespaced_event.assert_called_once()
        self.assertTrue(response.closed)
        self.assertTrue(response.released)

    def test_only_matching_reason_is_printed(self):
        """Test that events whose reason differs from the filter are skipped."""
        self.serve(core_event("Testing", "Event Message 0"), core_event("Other", "Event Message 1"))

        received = self.consumer.run()

        self.assertEqual(received, 2)
        self.assertEqual(len(self.lines()), 1)
        self.assertTrue(self.lines()[0].startswith("Testing Event Message 0 "))

    def test_all_change_types_are_filtered(self):
        self.serve(
            core_event("Testing", event_type="ADDED"),
            core_event("Testing", event_type="MODIFIED"),
            core_event("Testing", event_type="DELETED"),
        )

        self.consumer.run()

        self.assertEqual(len(self.lines()), 3)

    def test_status_is_printed_without_filter(self):
        """Test that a status prints code, reason, message and details and the watch continues."""
        status = {
            "type": "ADDED",
            "object": {
                "kind": "Status",
                "code": 500,
                "reason": "InternalError",
                "message": "etcd leader changed",
                "details": {"retryAfterSeconds": 1},
            },
        }
        self.serve(status, core_event("Testing"))

        self.consumer.run()

        lines = self.lines()
        self.assertEqual(lines[0], "500 InternalError etcd leader changed {'retryAfterSeconds': 1}")
        self.assertTrue(lines[1].startswith("Testing "))

    def test_error_status_is_printed(self):
        """Test that an ERROR notification carrying a Status prints its four fields."""
        error = {
            "type": "ERROR",
            "object": {
                "kind": "Status",
                "apiVersion": "v1",
                "status": "Failure",
                "code": 500,
                "reason": "InternalError",
                "message": "etcd leader changed",
                "details": {"retryAfterSeconds": 1},
            },
        }
        self.serve(core_event("Testing"), error)

        received = self.consumer.run()

        self.assertEqual(received, 2)
        self.assertEqual(self.lines()[-1], "500 InternalError etcd leader changed {'retryAfterSeconds': 1}")

    def test_bookmark_and_error_print_nothing(self):
        """Test that bookmarks and error notifications never print event fields."""
        bookmark = {
            "type": "BOOKMARK",
            "object": {"kind": "Event", "apiVersion": "v1", "metadata": {"resourceVersion": "1"}},
        }
        error = core_event("Testing", event_type="ERROR")
        self.serve(bookmark, error)

        self.consumer.run()

        self.assertEqual(self.lines(), [])

    def test_watch_open_failure_is_raised(self):
        """Test that failing to open the watch is fatal."""
        self.connection.core_v1_api.list_namespaced_event.side_effect = ApiException(status=403, reason="Forbidden")

        with self.assertRaises(ApiException):
            self.consumer.run()

    def test_events_api_event_with_series(self):
        config = EventLabConfig(kubeconfig=None, api=EventsApi.EVENTS)
        consumer = Consumer(config, self.connection, out=self.out, watcher=watch.Watch())
        self.serve({
            "type": "MODIFIED",
            "object": {
                "kind": "Event",
                "apiVersion": "events.k8s.io/v1",
                "reason": "Testing",
                "note": "Event Message 0",
                "eventTime": "2024-05-01T12:00:00.000000Z",
                "series": {"count": 2, "lastObservedTime": "2024-05-01T12:00:01.000000Z"},
            },
        }, api=self.connection.events_v1_api)

        consumer.run()

        self.assertEqual(
            self.lines(),
            ["Testing Event Message 0 2024-05-01 12:00:00+00:00 2024-05-01 12:00:01+00:00 2"],
        )

    def test_default_output_is_stdout(self):
        self.serve(core_event("Testing"))
        with mock.patch("eventlab.consumer.sys.stdout", new_callable=io.StringIO) as stdout:
            consumer = Consumer(self.config, self.connection)
            consumer.run()

        self.assertIn("Testing Event Message 0", stdout.getvalue())


if __name__ == "__main__":
    unittest.main()
