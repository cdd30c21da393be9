"""Component factory for syncpod jobs."""

from __future__ import annotations

from pathlib import Path

import structlog
from kubernetes_asyncio import config as kubernetes_config
from kubernetes_asyncio.client import ApiClient
from kubernetes_asyncio.config import ConfigException
from safir.kubernetes import initialize_kubernetes
from structlog.stdlib import BoundLogger

from .config import Config
from .constants import ROOT_LOGGER
from .exceptions import ConfigurationError
from .services.builder.helper import HelperBuilder
from .services.endpoint import EndpointManager
from .services.executor import TransferExecutor
from .services.planner import SyncPlanner
from .services.resolver import NodeResolver
from .services.sync import SyncJob
from .storage.kubernetes.helper import HelperStorage
from .storage.ssh import SSHConnector

__all__ = ["Factory", "create_api_client"]


async def create_api_client(
    *, kubeconfig: Path | None = None, context: str | None = None
) -> ApiClient:
    """Create a Kubernetes API client.

    Explicit kubeconfig options take precedence. Otherwise, the in-cluster
    service account is used when running inside a cluster, falling back to
    the default kubeconfig.

    Parameters
    ----------
    kubeconfig
        Path to a kubeconfig file.
    context
        Name of the kubeconfig context to use.

    Returns
    -------
    kubernetes_asyncio.client.ApiClient
        Configured API client.

    Raises
    ------
    ConfigurationError
        Raised if no usable Kubernetes configuration was found.
    """
    try:
        if kubeconfig or context:
            await kubernetes_config.load_kube_config(
                config_file=str(kubeconfig) if kubeconfig else None,
                context=context,
            )
        else:
            await initialize_kubernetes()
    except (ConfigException, OSError) as e:
        msg = f"Unable to load Kubernetes configuration: {e}"
        raise ConfigurationError(msg) from e
    return ApiClient()


class Factory:
    """Build the services that make up a job.

    Parameters
    ----------
    config
        syncpod configuration.
    api_client
        Kubernetes API client.
    logger
        Logger to use. Defaults to the application root logger.
    """

    def __init__(
        self,
        config: Config,
        api_client: ApiClient,
        logger: BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._api_client = api_client
        self._logger = logger or structlog.get_logger(ROOT_LOGGER)

    def create_endpoint_manager(self) -> EndpointManager:
        """Create the manager for the helper pod and service."""
        storage = HelperStorage(
            self._api_client,
            poll_interval=self._config.poll_interval,
            logger=self._logger,
        )
        return EndpointManager(
            config=self._config,
            helper_builder=HelperBuilder(self._config, self._logger),
            helper_storage=storage,
            logger=self._logger,
        )

    def create_executor(self) -> TransferExecutor:
        """Create the transfer executor."""
        return TransferExecutor(
            chunk_size=self._config.copy_chunk_size,
            max_reported_errors=self._config.max_reported_errors,
            fail_fast=self._config.fail_fast,
            logger=self._logger,
        )

    def create_node_resolver(self) -> NodeResolver:
        """Create the node resolver."""
        return NodeResolver(self._api_client, self._logger)

    def create_ssh_connector(self) -> SSHConnector:
        """Create the SSH connector."""
        return SSHConnector(
            retry_interval=self._config.retry_interval, logger=self._logger
        )

    def create_sync_job(
        self, *, ssh_connector: SSHConnector | None = None
    ) -> SyncJob:
        """Create a sync job.

        Parameters
        ----------
        ssh_connector
            Override the SSH connector, used by the test suite.

        Returns
        -------
        SyncJob
            Newly-created job.
        """
        return SyncJob(
            config=self._config,
            node_resolver=self.create_node_resolver(),
            endpoint_manager=self.create_endpoint_manager(),
            ssh_connector=ssh_connector or self.create_ssh_connector(),
            planner=SyncPlanner(self._logger),
            executor=self.create_executor(),
            logger=self._logger,
        )

    async def aclose(self) -> None:
        """Close the Kubernetes API client."""
        await self._api_client.close()
