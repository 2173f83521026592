import logging
from typing import Sequence

from aws_cdk import (
    Aws,
    CfnOutput,
    Environment,
    Stack,
)
from constructs import Construct

from .config import ServiceConfig, Settings
from .platform import ClusterPlatform
from .registry import ImageRegistry
from .service import ContainerService

logger = logging.getLogger(__name__)


class Ec2ClusterStack(Stack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        settings: Settings,
        services: Sequence[ServiceConfig] = (),
        env: Environment = None,
        **kwargs
    ) -> None:
        if env is None:
            env = Environment(account=settings.account, region=settings.region)
        super().__init__(scope, id, env=env, **kwargs)

        self.platform = ClusterPlatform(self, "Platform", settings)
        self.registry = ImageRegistry(self, "Registry", settings.registry_name)

        self.services = {}
        for config in services:
            logger.info("Adding service %s", config.name)
            self.services[config.name] = ContainerService(
                self, f"Service-{config.name}",
                platform=self.platform,
                config=config,
                registry=self.registry
            )

        repository_uri = self.registry.repository.repository_uri
        registry_host = f"{Aws.ACCOUNT_ID}.dkr.ecr.{Aws.REGION}.{Aws.URL_SUFFIX}"

        CfnOutput(self, "ClusterName", value=self.platform.cluster.cluster_name)
        CfnOutput(self, "RepositoryUri", value=repository_uri)
        CfnOutput(self, "InstanceId", value=self.platform.instance.instance_id)
        CfnOutput(self, "InstancePublicIp", value=self.platform.instance.instance_public_ip)
        CfnOutput(
            self, "DockerLogin",
            value=(
                f"aws ecr get-login-password --region {Aws.REGION} | "
                f"docker login --username AWS --password-stdin {registry_host}"
            ),
            description="Authenticate docker against the repository"
        )
        CfnOutput(
            self, "DockerPush",
            value=f"docker tag <image> {repository_uri}:latest && docker push {repository_uri}:latest",
            description="Push a local image to the repository"
        )
