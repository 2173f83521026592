import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import dotenv

logger = logging.getLogger(__name__)

# CloudWatch retention for every container log group
LOG_RETENTION_DAYS = 14
DESIRED_COUNT = 1
ECS_CONFIG_PATH = "/etc/ecs/ecs.config"

DEFAULT_CLUSTER_NAME = "ec2-cluster"
DEFAULT_INSTANCE_TYPE = "t3.micro"
DEFAULT_CPU = 256
DEFAULT_MEMORY = 512
DEFAULT_TAG = "latest"

_NAME_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
_AMI_RE = re.compile(r"^ami-[0-9a-f]{8,17}$")


class ConfigError(ValueError):
    """Raised when the deployment settings or service definitions are invalid."""


@dataclass(frozen=True)
class Settings:
    account: str
    region: str
    cluster_name: str = DEFAULT_CLUSTER_NAME
    instance_type: str = DEFAULT_INSTANCE_TYPE
    ami_id: Optional[str] = None
    key_pair_name: Optional[str] = None
    repository_name: Optional[str] = None

    @property
    def registry_name(self) -> str:
        return self.repository_name or self.cluster_name


@dataclass(frozen=True)
class ServiceConfig:
    name: str
    image: Optional[str] = None
    tag: str = DEFAULT_TAG
    cpu: int = DEFAULT_CPU
    memory: int = DEFAULT_MEMORY
    container_port: Optional[int] = None
    host_port: Optional[int] = None
    environment: Dict[str, str] = field(default_factory=dict)

    @property
    def uses_registry(self) -> bool:
        """True when the image is pulled from the project's own ECR repository."""
        return self.image is None


def _check_name(value: str, what: str) -> str:
    if not isinstance(value, str) or not _NAME_RE.match(value):
        raise ConfigError(
            f"{what} must be lowercase letters, digits and dashes, got {value!r}"
        )
    return value


def _optional(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = environ.get(key, "").strip()
    return value or None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read deployment settings from the environment.

    A ``.env`` file in the working directory is loaded first when the real
    process environment is used. Passing ``environ`` skips that step.
    """
    if environ is None:
        dotenv.load_dotenv()
        environ = os.environ

    missing = [key for key in ("AWS_ACCOUNT_ID", "AWS_REGION") if not _optional(environ, key)]
    if missing:
        raise ConfigError(f"missing required environment variables: {', '.join(missing)}")

    cluster_name = _check_name(
        _optional(environ, "CLUSTER_NAME") or DEFAULT_CLUSTER_NAME, "CLUSTER_NAME"
    )

    ami_id = _optional(environ, "AMI_ID")
    if ami_id is not None and not _AMI_RE.match(ami_id):
        raise ConfigError(f"AMI_ID does not look like an image id: {ami_id!r}")

    repository_name = _optional(environ, "REPOSITORY_NAME")
    if repository_name is not None:
        _check_name(repository_name, "REPOSITORY_NAME")

    settings = Settings(
        account=_optional(environ, "AWS_ACCOUNT_ID"),
        region=_optional(environ, "AWS_REGION"),
        cluster_name=cluster_name,
        instance_type=_optional(environ, "INSTANCE_TYPE") or DEFAULT_INSTANCE_TYPE,
        ami_id=ami_id,
        key_pair_name=_optional(environ, "KEY_PAIR_NAME"),
        repository_name=repository_name,
    )
    logger.info(
        "Cluster %s in %s/%s on %s",
        settings.cluster_name,
        settings.account,
        settings.region,
        settings.instance_type,
    )
    return settings


def _port(entry: Mapping, key: str, service: str) -> Optional[int]:
    value = entry.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 65535:
        raise ConfigError(f"service {service}: {key} must be a port number, got {value!r}")
    return value


def _positive(entry: Mapping, key: str, default: int, service: str) -> int:
    value = entry.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"service {service}: {key} must be a positive integer, got {value!r}")
    return value


def _service(entry) -> ServiceConfig:
    if not isinstance(entry, Mapping):
        raise ConfigError(f"service definitions must be objects, got {entry!r}")

    name = _check_name(entry.get("name"), "service name")

    image = entry.get("image")
    if image is not None and (not isinstance(image, str) or not image.strip()):
        raise ConfigError(f"service {name}: image must be a non-empty string")

    tag = entry.get("tag", DEFAULT_TAG)
    if not isinstance(tag, str) or not tag:
        raise ConfigError(f"service {name}: tag must be a non-empty string")

    container_port = _port(entry, "containerPort", name)
    host_port = _port(entry, "hostPort", name)
    if host_port is not None and container_port is None:
        raise ConfigError(f"service {name}: hostPort needs a containerPort")
    if container_port is not None and host_port is None:
        host_port = container_port

    environment = entry.get("environment", {})
    if not isinstance(environment, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in environment.items()
    ):
        raise ConfigError(f"service {name}: environment must map strings to strings")

    return ServiceConfig(
        name=name,
        image=image,
        tag=tag,
        cpu=_positive(entry, "cpu", DEFAULT_CPU, name),
        memory=_positive(entry, "memory", DEFAULT_MEMORY, name),
        container_port=container_port,
        host_port=host_port,
        environment=dict(environment),
    )


def load_services(raw) -> List[ServiceConfig]:
    """
    Parse the ``services`` context value.

    ``raw`` is either the decoded list from ``cdk.json`` or a JSON string,
    which is what ``cdk synth -c services=...`` hands over.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(f"services context is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise ConfigError("services context must be a list")

    services = []
    seen = set()
    # static bridge mappings on a single instance, so a host port fits one service
    host_ports = {}
    for entry in raw:
        service = _service(entry)
        if service.name in seen:
            raise ConfigError(f"service {service.name} is defined more than once")
        seen.add(service.name)
        if service.host_port is not None:
            owner = host_ports.setdefault(service.host_port, service.name)
            if owner != service.name:
                raise ConfigError(
                    f"service {service.name}: hostPort {service.host_port} is already used by {owner}"
                )
        services.append(service)

    logger.info("Loaded %d service definition(s)", len(services))
    return services
