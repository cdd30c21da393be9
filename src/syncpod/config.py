"""Application configuration for syncpod."""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Self

import yaml
from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from safir.logging import LogLevel, Profile, configure_logging
from safir.pydantic import HumanTimedelta

from .constants import (
    AUTHORIZED_KEY_ENV_VAR,
    COPY_CHUNK_SIZE,
    ENV_PREFIX,
    ROOT_LOGGER,
    SSH_PORT_ENV_VAR,
)
from .exceptions import ConfigurationError
from .models.domain.kubernetes import PullPolicy, ServiceType

__all__ = ["DEFAULT_HELPER_SCRIPT", "Config", "EnvFirstSettings"]

DEFAULT_HELPER_SCRIPT = f"""\
set -e
apk add --no-cache openssh-server openssh-sftp-server >/dev/null
ssh-keygen -A >/dev/null
sed -i 's/^root:!/root:*/' /etc/shadow
mkdir -p /root/.ssh
chmod 700 /root/.ssh
printf '%s\\n' "${AUTHORIZED_KEY_ENV_VAR}" > /root/.ssh/authorized_keys
chmod 600 /root/.ssh/authorized_keys
exec /usr/sbin/sshd -D -e -p "${SSH_PORT_ENV_VAR}" \\
  -o PermitRootLogin=prohibit-password \\
  -o PasswordAuthentication=no \\
  -o Subsystem='sftp internal-sftp'
"""
"""Startup script for the default Alpine helper image.

Installs and starts an SSH daemon that only accepts the per-job public key
passed in the environment.
"""


def _alias(name: str, camel: str) -> AliasChoices:
    return AliasChoices(ENV_PREFIX + name, camel)


class EnvFirstSettings(BaseSettings):
    """Base class for Pydantic settings with environment overrides.

    Classes that inherit from this base class will prioritize environment
    variables over arguments to the class constructor.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, extra="forbid", validate_by_name=True
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Override the sources of settings.

        Deactivate :file:`.env` and secret file support. Allow environment
        variables to override init parameters, since init parameters come
        from the YAML configuration file and we want environment variables to
        take precedence.
        """
        return (env_settings, init_settings)


class Config(EnvFirstSettings):
    """Configuration for syncpod.

    Every setting has a default, so syncpod runs without a configuration
    file. Anything that used to be a fixed global (helper image, container
    name, object name prefix) lives here so that concurrent jobs never share
    names.
    """

    image: Annotated[
        str,
        Field(
            title="Helper image",
            description="Container image for the helper pod",
        ),
    ] = "docker.io/library/alpine:3.20"

    command: Annotated[
        list[str],
        Field(
            title="Helper command",
            description=(
                "Command run in the helper container. It must start an SSH"
                " daemon with SFTP support on the port given by"
                f" ${SSH_PORT_ENV_VAR} that accepts the public key in"
                f" ${AUTHORIZED_KEY_ENV_VAR} for root."
            ),
        ),
    ] = ["/bin/sh", "-c", DEFAULT_HELPER_SCRIPT]

    pull_policy: Annotated[
        PullPolicy,
        Field(
            title="Image pull policy",
            validation_alias=_alias("PULL_POLICY", "pullPolicy"),
        ),
    ] = PullPolicy.IF_NOT_PRESENT

    container_name: Annotated[
        str,
        Field(
            title="Helper container name",
            validation_alias=_alias("CONTAINER_NAME", "containerName"),
        ),
    ] = "helper"

    name_prefix: Annotated[
        str,
        Field(
            title="Prefix for helper object names",
            description="A random suffix is appended for each job",
            validation_alias=_alias("NAME_PREFIX", "namePrefix"),
        ),
    ] = "syncpod-helper-"

    ssh_port: Annotated[
        int,
        Field(
            title="SSH port inside the helper container",
            ge=1,
            le=65535,
            validation_alias=_alias("SSH_PORT", "sshPort"),
        ),
    ] = 22

    service_type: Annotated[
        ServiceType,
        Field(
            title="Type of the service exposing the helper",
            validation_alias=_alias("SERVICE_TYPE", "serviceType"),
        ),
    ] = ServiceType.NODE_PORT

    ssh_host: Annotated[
        str | None,
        Field(
            title="Host override for the SSH connection",
            description=(
                "If set, connect to this host instead of the address of the"
                " node holding the volume"
            ),
            validation_alias=_alias("SSH_HOST", "sshHost"),
        ),
    ] = None

    active_deadline: Annotated[
        HumanTimedelta,
        Field(
            title="Maximum lifetime of the helper pod",
            description=(
                "Kubernetes kills the helper after this long even if syncpod"
                " never cleans it up"
            ),
            validation_alias=_alias("ACTIVE_DEADLINE", "activeDeadline"),
        ),
    ] = timedelta(hours=12)

    startup_timeout: Annotated[
        HumanTimedelta,
        Field(
            title="How long to wait for the helper pod to start",
            validation_alias=_alias("STARTUP_TIMEOUT", "startupTimeout"),
        ),
    ] = timedelta(minutes=5)

    cleanup_timeout: Annotated[
        HumanTimedelta,
        Field(
            title="How long to spend deleting the helper",
            validation_alias=_alias("CLEANUP_TIMEOUT", "cleanupTimeout"),
        ),
    ] = timedelta(minutes=1)

    ssh_timeout: Annotated[
        HumanTimedelta,
        Field(
            title="How long to wait for the SSH daemon to accept a login",
            validation_alias=_alias("SSH_TIMEOUT", "sshTimeout"),
        ),
    ] = timedelta(seconds=30)

    job_timeout: Annotated[
        HumanTimedelta | None,
        Field(
            title="Overall deadline for a job",
            description=(
                "When it expires, workers stop picking up new items and the"
                " helper is deleted"
            ),
            validation_alias=_alias("JOB_TIMEOUT", "jobTimeout"),
        ),
    ] = None

    poll_interval: Annotated[
        HumanTimedelta,
        Field(
            title="Interval between helper pod phase checks",
            validation_alias=_alias("POLL_INTERVAL", "pollInterval"),
        ),
    ] = timedelta(seconds=1)

    retry_interval: Annotated[
        HumanTimedelta,
        Field(
            title="Interval between SSH readiness checks",
            validation_alias=_alias("RETRY_INTERVAL", "retryInterval"),
        ),
    ] = timedelta(seconds=1)

    workers: Annotated[
        int,
        Field(
            title="Default number of transfer workers",
        ),
    ] = 4

    copy_chunk_size: Annotated[
        int,
        Field(
            title="Size of each read while streaming a file",
            ge=1,
            validation_alias=_alias("COPY_CHUNK_SIZE", "copyChunkSize"),
        ),
    ] = COPY_CHUNK_SIZE

    fail_fast: Annotated[
        bool,
        Field(
            title="Stop starting new items after the first failure",
            validation_alias=_alias("FAIL_FAST", "failFast"),
        ),
    ] = False

    max_reported_errors: Annotated[
        int,
        Field(
            title="Maximum number of transfer failures kept for reporting",
            ge=1,
            validation_alias=_alias(
                "MAX_REPORTED_ERRORS", "maxReportedErrors"
            ),
        ),
    ] = 100

    debug: Annotated[
        bool,
        Field(
            title="Show debug output",
            description=(
                "If True, then log level will be set to debug and output"
                " will be human-readable."
            ),
        ),
    ] = False

    log_profile: Annotated[
        Profile,
        Field(
            title="Logging profile",
            validation_alias=_alias("LOG_PROFILE", "logProfile"),
        ),
    ] = Profile.development

    log_level: Annotated[
        LogLevel,
        Field(
            title="Log level",
            validation_alias=_alias("LOG_LEVEL", "logLevel"),
        ),
    ] = LogLevel.INFO

    add_timestamp: Annotated[
        bool,
        Field(
            title="Add timestamp to log lines",
            validation_alias=_alias("ADD_TIMESTAMP", "addTimestamp"),
        ),
    ] = False

    @classmethod
    def from_file(cls, path: Path | None) -> Self:
        """Construct the configuration from a YAML file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML, or `None` to use only
            defaults and environment variables.

        Returns
        -------
        Config
            The corresponding configuration.

        Raises
        ------
        ConfigurationError
            Raised if the file cannot be read or is not valid.
        """
        try:
            if path is None:
                return cls()
            with path.open("r") as f:
                return cls.model_validate(yaml.safe_load(f) or {})
        except (OSError, ValidationError, yaml.YAMLError) as e:
            source = str(path) if path else "environment"
            msg = f"Invalid configuration from {source}: {e!s}"
            raise ConfigurationError(msg) from e

    def configure_logging(self) -> None:
        """Configure logging based on the syncpod configuration."""
        if self.debug:
            log_level = LogLevel.DEBUG
            log_profile = Profile.development
        else:
            log_level = self.log_level
            log_profile = self.log_profile

        configure_logging(
            profile=log_profile,
            log_level=log_level,
            add_timestamp=self.add_timestamp,
            name=ROOT_LOGGER,
        )

        # paramiko logs each failed readiness attempt at INFO or above.
        if log_level != LogLevel.DEBUG:
            logging.getLogger("paramiko").setLevel(logging.CRITICAL)
