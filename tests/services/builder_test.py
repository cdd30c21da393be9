"""Tests for construction of the helper Kubernetes objects."""

from __future__ import annotations

import re

from structlog.stdlib import BoundLogger

from syncpod.config import Config
from syncpod.constants import (
    AUTHORIZED_KEY_ENV_VAR,
    JOB_LABEL,
    MANAGED_BY_LABEL,
    SSH_PORT_ENV_VAR,
)
from syncpod.models.domain.helper import HelperResource, NodeBinding
from syncpod.services.builder.helper import HelperBuilder

from ..support.config import configure


def _helper(builder: HelperBuilder, config: Config) -> HelperResource:
    return HelperResource(
        name=builder.build_name(),
        namespace="default",
        pvc="data",
        mount_path="/data",
        binding=NodeBinding(node="node-1", address="10.0.0.5"),
        port=config.ssh_port,
    )


def test_build_name(config: Config, logger: BoundLogger) -> None:
    builder = HelperBuilder(config, logger)
    names = {builder.build_name() for _ in range(20)}
    assert len(names) > 1
    for name in names:
        assert re.fullmatch(r"syncpod-test-[a-z]{7}", name)


def test_build(config: Config, logger: BoundLogger) -> None:
    builder = HelperBuilder(config, logger)
    helper = _helper(builder, config)
    objects = builder.build(helper, "ssh-ed25519 AAAA test")
    labels = {MANAGED_BY_LABEL: "syncpod", JOB_LABEL: helper.name}

    pod = objects.pod
    assert pod.metadata.name == helper.name
    assert pod.metadata.namespace == "default"
    assert pod.metadata.labels == labels
    assert pod.spec.node_name == "node-1"
    assert pod.spec.restart_policy == "Never"
    assert pod.spec.active_deadline_seconds == 12 * 60 * 60
    assert pod.spec.volumes[0].persistent_volume_claim.claim_name == "data"
    container = pod.spec.containers[0]
    assert container.name == "helper"
    assert container.image == config.image
    assert container.image_pull_policy == "IfNotPresent"
    assert container.command == config.command
    env = {e.name: e.value for e in container.env}
    assert env == {
        AUTHORIZED_KEY_ENV_VAR: "ssh-ed25519 AAAA test",
        SSH_PORT_ENV_VAR: "2222",
    }
    assert container.ports[0].container_port == 2222
    assert container.ports[0].name == "ssh"
    mount = container.volume_mounts[0]
    assert mount.mount_path == "/data"
    assert mount.name == pod.spec.volumes[0].name

    service = objects.service
    assert service.metadata.name == helper.name
    assert service.metadata.labels == labels
    assert service.spec.type == "NodePort"
    assert service.spec.selector == {JOB_LABEL: helper.name}
    assert service.spec.ports[0].port == 2222
    assert service.spec.ports[0].target_port == "ssh"


def test_build_cluster_ip(logger: BoundLogger) -> None:
    config = configure("cluster-ip")
    builder = HelperBuilder(config, logger)
    helper = _helper(builder, config)
    objects = builder.build(helper, "ssh-ed25519 AAAA test")

    container = objects.pod.spec.containers[0]
    assert container.name == "sshd"
    assert container.image == "registry.example.com/sshd:1.0"
    assert container.image_pull_policy == "Always"
    assert objects.pod.spec.active_deadline_seconds == 600
    assert objects.service.spec.type == "ClusterIP"
    assert objects.service.spec.ports[0].port == 2022
