"""Target object handling module.

Events produced by the lab are attached to a placeholder ConfigMap. This
module creates and deletes that ConfigMap.
"""

import logging
from typing import ClassVar

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from pydantic import BaseModel

from eventlab.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


class TargetError(Exception):
    """Raised when the target object cannot be created."""


class TargetConflictError(TargetError):
    """Raised when the target object already exists, usually after an unclean shutdown."""


class TargetRef(BaseModel):
    """Identity of a created target object."""

    namespace: str
    name: str
    uid: str
    resource_version: str | None = None

    API_VERSION: ClassVar[str] = "v1"
    KIND: ClassVar[str] = "ConfigMap"

    @classmethod
    def from_config_map(cls, config_map: client.V1ConfigMap) -> "TargetRef":
        metadata = config_map.metadata
        return cls(
            namespace=metadata.namespace,
            name=metadata.name,
            uid=metadata.uid,
            resource_version=metadata.resource_version,
        )

    def to_object_reference(self) -> client.V1ObjectReference:
        """Build the reference events use to point at this object."""
        return client.V1ObjectReference(
            api_version=self.API_VERSION,
            kind=self.KIND,
            name=self.name,
            namespace=self.namespace,
            uid=self.uid,
            resource_version=self.resource_version,
        )

    @property
    def field_selector(self) -> str:
        """Field selector matching every core/v1 event that involves this object."""
        return f"involvedObject.uid={self.uid}"


class TargetObject:
    """Handler for the ConfigMap that events are attached to."""

    def __init__(self, connection: KubernetesConnection, namespace: str, name: str):
        """Initialize the target handler.

        Args:
            connection: The Kubernetes connection to use
            namespace: Namespace of the ConfigMap
            name: Name of the ConfigMap
        """
        self.connection = connection
        self.namespace = namespace
        self.name = name

    def create(self) -> TargetRef:
        """Create the ConfigMap.

        An existing ConfigMap is never adopted: its owner is unknown.

        Returns:
            The identity of the created ConfigMap.

        Raises:
            TargetConflictError: If the ConfigMap already exists.
            TargetError: If the ConfigMap cannot be created for any other reason.
        """
        body = client.V1ConfigMap(
            metadata=client.V1ObjectMeta(namespace=self.namespace, name=self.name),
        )
        try:
            config_map = self.connection.core_v1_api.create_namespaced_config_map(
                namespace=self.namespace, body=body
            )
        except ApiException as e:
            if e.status == HTTP_CONFLICT:
                raise TargetConflictError(
                    f"ConfigMap {self.namespace}/{self.name} already exists, delete it before starting"
                ) from e
            raise TargetError(f"Failed to create ConfigMap {self.namespace}/{self.name}: {e.reason}") from e

        ref = TargetRef.from_config_map(config_map)
        logger.info(f"Created ConfigMap {ref.namespace}/{ref.name} (uid={ref.uid})")
        return ref

    def delete(self, ref: TargetRef, timeout: float | None = None) -> bool:
        """Delete the ConfigMap, logging instead of raising on failure.

        Args:
            ref: The ConfigMap to delete.
            timeout: Request timeout in seconds.

        Returns:
            True if the ConfigMap was deleted by this call, False otherwise.
        """
        try:
            self.connection.core_v1_api.delete_namespaced_config_map(
                name=ref.name, namespace=ref.namespace, _request_timeout=timeout
            )
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                logger.debug(f"ConfigMap {ref.namespace}/{ref.name} already deleted")
            else:
                logger.error(f"Failed to delete ConfigMap {ref.namespace}/{ref.name}: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to delete ConfigMap {ref.namespace}/{ref.name}: {e}")
            return False

        logger.info(f"Deleted ConfigMap {ref.namespace}/{ref.name}")
        return True
