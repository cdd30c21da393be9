"""Construction of Kubernetes objects for the transfer helper."""

from __future__ import annotations

import secrets
import string

from kubernetes_asyncio.client import (
    V1Container,
    V1ContainerPort,
    V1EnvVar,
    V1ObjectMeta,
    V1PersistentVolumeClaimVolumeSource,
    V1Pod,
    V1PodSpec,
    V1Service,
    V1ServicePort,
    V1ServiceSpec,
    V1Volume,
    V1VolumeMount,
)
from structlog.stdlib import BoundLogger

from ...config import Config
from ...constants import (
    APPLICATION_NAME,
    AUTHORIZED_KEY_ENV_VAR,
    JOB_LABEL,
    MANAGED_BY_LABEL,
    SSH_PORT_ENV_VAR,
    VOLUME_NAME,
)
from ...models.domain.helper import HelperObjects, HelperResource

__all__ = ["HelperBuilder"]

_SUFFIX_LENGTH = 7


class HelperBuilder:
    """Construct Kubernetes objects for the pod and service of a helper.

    Parameters
    ----------
    config
        syncpod configuration.
    logger
        Logger to use.
    """

    def __init__(self, config: Config, logger: BoundLogger) -> None:
        self._config = config
        self._logger = logger

    def build(self, helper: HelperResource, public_key: str) -> HelperObjects:
        """Construct the objects that make up a helper.

        Parameters
        ----------
        helper
            Helper to build objects for.
        public_key
            OpenSSH public key the helper should accept for root.

        Returns
        -------
        HelperObjects
            Kubernetes objects for the helper.
        """
        return HelperObjects(
            pod=self.build_pod(helper, public_key),
            service=self.build_service(helper),
        )

    def build_name(self) -> str:
        """Generate a fresh name for the objects of one helper."""
        suffix = "".join(
            secrets.choice(string.ascii_lowercase)
            for _ in range(_SUFFIX_LENGTH)
        )
        return self._config.name_prefix + suffix

    def build_pod(self, helper: HelperResource, public_key: str) -> V1Pod:
        """Construct the helper pod.

        The pod is pinned to the node holding the volume, so that volumes
        that can only be attached to one node can still be mounted while
        another workload is using them.
        """
        container = V1Container(
            name=self._config.container_name,
            image=self._config.image,
            image_pull_policy=self._config.pull_policy.value,
            command=self._config.command,
            env=[
                V1EnvVar(name=AUTHORIZED_KEY_ENV_VAR, value=public_key),
                V1EnvVar(name=SSH_PORT_ENV_VAR, value=str(helper.port)),
            ],
            ports=[
                V1ContainerPort(
                    container_port=helper.port, name="ssh", protocol="TCP"
                )
            ],
            volume_mounts=[
                V1VolumeMount(mount_path=helper.mount_path, name=VOLUME_NAME)
            ],
        )
        volume = V1Volume(
            name=VOLUME_NAME,
            persistent_volume_claim=V1PersistentVolumeClaimVolumeSource(
                claim_name=helper.pvc
            ),
        )
        deadline = int(self._config.active_deadline.total_seconds())
        return V1Pod(
            metadata=self._build_metadata(helper),
            spec=V1PodSpec(
                active_deadline_seconds=deadline,
                containers=[container],
                node_name=helper.binding.node,
                restart_policy="Never",
                volumes=[volume],
            ),
        )

    def build_service(self, helper: HelperResource) -> V1Service:
        """Construct the service exposing the helper SSH port."""
        return V1Service(
            metadata=self._build_metadata(helper),
            spec=V1ServiceSpec(
                type=self._config.service_type.value,
                selector={JOB_LABEL: helper.name},
                ports=[
                    V1ServicePort(
                        name="ssh",
                        port=helper.port,
                        target_port="ssh",
                        protocol="TCP",
                    )
                ],
            ),
        )

    def _build_metadata(self, helper: HelperResource) -> V1ObjectMeta:
        """Construct the metadata shared by the pod and the service."""
        return V1ObjectMeta(
            name=helper.name,
            namespace=helper.namespace,
            labels={
                MANAGED_BY_LABEL: APPLICATION_NAME,
                JOB_LABEL: helper.name,
            },
        )
