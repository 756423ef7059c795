"""Kubernetes connection management.

This module handles the connection to the Kubernetes API.
"""
import logging
import socket

from kubernetes import client, config

logger = logging.getLogger(__name__)


class KubernetesConnection:
    """Connection manager for the Kubernetes API.

    This class manages authentication and connection to the Kubernetes API.
    It is shared by the target, the event recorders and the consumer.
    """

    def __init__(self, kubeconfig: str | None = None):
        """Initialize the Kubernetes connection.

        Args:
            kubeconfig: Path to a kubeconfig file. If None, in-cluster configuration is tried
                first, falling back to the client's default kubeconfig lookup.
        """
        self.kubeconfig = kubeconfig
        self._setup_connection()
        # Get hostname for event reporting
        self.hostname = socket.gethostname()

    def _setup_connection(self) -> None:
        """Set up the connection to the Kubernetes API."""
        try:
            if self.kubeconfig:
                config.load_kube_config(config_file=self.kubeconfig)
                logger.info(f"Using kubeconfig {self.kubeconfig}")
            else:
                self._load_default_config()
        except (config.ConfigException, OSError) as e:
            logger.error(
                "Failed to load Kubernetes configuration. Ensure that the kubeconfig file is available and valid."
            )
            raise RuntimeError(f"Kubernetes configuration error: {e}") from e

        self.core_v1_api = client.CoreV1Api()
        self.events_v1_api = client.EventsV1Api()
        self.host = self.core_v1_api.api_client.configuration.host
        logger.debug(f"Connected to Kubernetes API at {self.host}")

    def _load_default_config(self) -> None:
        try:
            # Try to load in-cluster config first (for when running in a pod)
            config.load_incluster_config()
            logger.info("Using in-cluster configuration")
        except config.ConfigException:
            # Fall back to kubeconfig for local development
            config.load_kube_config()
            logger.info("Using kubeconfig configuration")
