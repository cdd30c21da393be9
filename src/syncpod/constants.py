"""Constants for syncpod.  Overrideable for testing."""

__all__ = [
    "APPLICATION_NAME",
    "AUTHORIZED_KEY_ENV_VAR",
    "CONFIG_FILE_ENV_VAR",
    "COPY_CHUNK_SIZE",
    "ENV_PREFIX",
    "HASH_CHUNK_SIZE",
    "HOSTNAME_LABEL",
    "JOB_LABEL",
    "MANAGED_BY_LABEL",
    "ROOT_LOGGER",
    "SSH_PORT_ENV_VAR",
    "SSH_USER",
    "VOLUME_NAME",
]

ENV_PREFIX = "SYNCPOD_"
"""Prefix for environment variables governing syncpod behavior."""

CONFIG_FILE_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
"""Name of environment variable pointing to a YAML configuration file."""

AUTHORIZED_KEY_ENV_VAR = f"{ENV_PREFIX}AUTHORIZED_KEY"
"""Environment variable in the helper container holding the public key."""

SSH_PORT_ENV_VAR = f"{ENV_PREFIX}SSH_PORT"
"""Environment variable in the helper container holding the SSH port."""

APPLICATION_NAME = "syncpod"
"""Value of the managed-by label on every object syncpod creates."""

ROOT_LOGGER = "syncpod"
"""Root logger name."""

HOSTNAME_LABEL = "kubernetes.io/hostname"
"""Node affinity key identifying a single node."""

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
"""Label marking objects created by syncpod."""

JOB_LABEL = "syncpod.io/job"
"""Label holding the helper name, used as the service selector."""

VOLUME_NAME = "data"
"""Name of the PVC volume inside the helper pod."""

SSH_USER = "root"
"""User the transfer session authenticates as."""

COPY_CHUNK_SIZE = 32 * 1024
"""Size of each read when streaming a file to its destination."""

HASH_CHUNK_SIZE = 64 * 1024
"""Size of each read when computing a content digest."""
