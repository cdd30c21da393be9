"""Test fixtures for syncpod tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio
import structlog
from kubernetes_asyncio.client import ApiClient, V1Namespace, V1ObjectMeta
from structlog.stdlib import BoundLogger

from syncpod.config import Config
from syncpod.constants import ROOT_LOGGER
from syncpod.factory import Factory

from .support.config import configure
from .support.kubernetes import (
    MockSyncPodKubernetesApi,
    install_volume,
    patch_kubernetes,
)
from .support.ssh import MockSFTPServer, MockSSHConnector


@pytest.fixture
def config() -> Config:
    """Construct default configuration for tests."""
    return configure("standard")


@pytest.fixture
def logger() -> BoundLogger:
    return structlog.get_logger(ROOT_LOGGER)


@pytest_asyncio.fixture
async def mock_kubernetes() -> AsyncIterator[MockSyncPodKubernetesApi]:
    """Replace the Kubernetes API with a mock holding one bound volume.

    The volume is the claim ``data`` in the ``default`` namespace, pinned to
    ``node-1`` with address ``10.0.0.5``.
    """
    for mock in patch_kubernetes():
        await mock.create_namespace(
            V1Namespace(metadata=V1ObjectMeta(name="default"))
        )
        install_volume(mock)
        yield mock


@pytest.fixture
def api_client() -> ApiClient:
    api_client = Mock(spec=ApiClient)
    api_client.close = AsyncMock()
    return api_client


@pytest.fixture
def factory(
    config: Config,
    api_client: ApiClient,
    logger: BoundLogger,
    mock_kubernetes: MockSyncPodKubernetesApi,
) -> Factory:
    """Create a component factory for tests."""
    return Factory(config, api_client, logger)


@pytest.fixture
def mock_sftp(tmp_path: Path) -> MockSFTPServer:
    """Mock SFTP server whose volume is mounted at :file:`/data`."""
    return MockSFTPServer(tmp_path / "volume", "/data")


@pytest.fixture
def mock_ssh(
    mock_sftp: MockSFTPServer, logger: BoundLogger
) -> MockSSHConnector:
    return MockSSHConnector(mock_sftp, logger)
