"""Command-line interface for the event lab.

This module serves as the entrypoint for both the producer and the consumer.
"""

import argparse
import logging
import signal
import sys
import threading

from kubernetes.client.exceptions import ApiException

from eventlab import __description__, __version__
from eventlab.config import EventLabConfig, EventsApi, default_kubeconfig
from eventlab.consumer import Consumer
from eventlab.kubernetes.connection import KubernetesConnection
from eventlab.kubernetes.target import TargetError
from eventlab.producer import Producer


def setup_logging(verbose: bool = False) -> None:
    """Set up logging configuration.

    Args:
        verbose: Whether to enable verbose logging.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(level=log_level, format=log_format, stream=sys.stdout)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: Command-line arguments to parse. If None, sys.argv will be used.

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(prog="eventlab", description=__description__)

    parser.add_argument("--version", action="version", version=f"eventlab {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    parser.add_argument(
        "--kubeconfig",
        help=f"(optional) absolute path to the kubeconfig file (default: {default_kubeconfig() or 'in-cluster'}, "
             "overrides EVENTLAB_KUBECONFIG)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--reason", help="Event reason to emit or filter on (overrides EVENTLAB_REASON)")
    common.add_argument(
        "--api",
        choices=[api.value for api in EventsApi],
        help="Events API flavour, core/v1 or events.k8s.io/v1 (overrides EVENTLAB_API)",
    )

    produce = subparsers.add_parser("produce", parents=[common], help="Emit events against a ConfigMap")
    produce.add_argument(
        "--namespace", help="Namespace of the target ConfigMap (overrides EVENTLAB_TARGET_NAMESPACE)"
    )
    produce.add_argument(
        "--interval", type=float, help="Seconds between two events (overrides EVENTLAB_INTERVAL)"
    )
    produce.add_argument("--count", type=int, help="Stop after emitting this many events")

    consume = subparsers.add_parser("consume", parents=[common], help="Watch events and print matching ones")
    consume.add_argument("--namespace", help="Namespace to watch (overrides EVENTLAB_EVENT_NAMESPACE)")

    return parser.parse_args(args)


def build_config(parsed_args: argparse.Namespace) -> EventLabConfig:
    """Create config from environment variables, overridden with command-line arguments.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    config = EventLabConfig.from_env()

    overrides = {}
    if parsed_args.kubeconfig:
        overrides["kubeconfig"] = parsed_args.kubeconfig
    if parsed_args.reason:
        overrides["reason"] = parsed_args.reason
    if parsed_args.api:
        overrides["api"] = EventsApi(parsed_args.api)
    if parsed_args.namespace:
        if parsed_args.command == "produce":
            overrides["target_namespace"] = parsed_args.namespace
        else:
            overrides["event_namespace"] = parsed_args.namespace
    if getattr(parsed_args, "interval", None) is not None:
        overrides["interval"] = parsed_args.interval

    # Re-validate so overrides go through the same checks as the environment
    return EventLabConfig.model_validate({**config.model_dump(), **overrides})


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Set the stop event on SIGINT or SIGTERM."""
    logger = logging.getLogger(__name__)

    def handle(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, stopping")
        stop_event.set()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def run_producer(config: EventLabConfig, connection: KubernetesConnection, count: int | None = None) -> int:
    """Run the producer until interrupted or count events were emitted.

    Returns:
        The number of emitted events.
    """
    stop_event = threading.Event()
    install_signal_handlers(stop_event)
    producer = Producer(config=config, connection=connection)
    return producer.run(stop_event, max_events=count)


def run_consumer(config: EventLabConfig, connection: KubernetesConnection) -> int:
    return Consumer(config=config, connection=connection).run()


def main(args: list[str] | None = None) -> int:
    """Main entry point for the event lab.

    Args:
        args: Command-line arguments. If None, sys.argv will be used.

    Returns:
        Exit code.
    """
    parsed_args = parse_args(args)
    setup_logging(parsed_args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = build_config(parsed_args)
        logger.info(
            f"Configuration: command={parsed_args.command}, api={config.api.value}, "
            f"reason={config.reason}, type={config.event_type}, "
            f"target={config.target_namespace}/{config.target_name}, "
            f"event_namespace={config.event_namespace}, interval={config.interval}s"
        )

        connection = KubernetesConnection(kubeconfig=config.kubeconfig)

        if parsed_args.command == "produce":
            run_producer(config, connection, count=parsed_args.count)
        else:
            run_consumer(config, connection)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except TargetError as e:
        logger.error(f"Failed to create target object: {e}")
        return 1
    except ApiException as e:
        logger.error(f"Kubernetes API error: {e.status} {e.reason}")
        return 1
    except RuntimeError as e:
        logger.error(f"{e}")
        return 1
    except Exception as e:
        logger.error(f"An unexpected error occurred: {e}")
        return 1

    logger.info("eventlab exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
