from aws_cdk import (
    aws_ecs as ecs,
    aws_logs as logs,
    RemovalPolicy,
)
from constructs import Construct

from .config import DESIRED_COUNT, ServiceConfig
from .platform import ClusterPlatform
from .registry import ImageRegistry

# CloudWatch only accepts a fixed set of retention periods
LOG_RETENTION = logs.RetentionDays.TWO_WEEKS


class ContainerService(Construct):
    """
    One task definition with a single container, and the ECS service that
    keeps it running on the cluster's EC2 capacity.
    """

    def __init__(
        self,
        scope: Construct,
        id: str,
        platform: ClusterPlatform,
        config: ServiceConfig,
        registry: ImageRegistry,
    ) -> None:
        super().__init__(scope, id)

        self.config = config
        cluster_name = platform.settings.cluster_name

        self.log_group = logs.LogGroup(
            self, "LogGroup",
            log_group_name=f"/ecs/{cluster_name}/{config.name}",
            retention=LOG_RETENTION,
            removal_policy=RemovalPolicy.DESTROY
        )

        self.task_definition = ecs.Ec2TaskDefinition(
            self, "TaskDef",
            family=f"{cluster_name}-{config.name}",
            network_mode=ecs.NetworkMode.BRIDGE
        )

        self.container = self.task_definition.add_container(
            config.name,
            image=self._image(registry),
            cpu=config.cpu,
            memory_limit_mib=config.memory,
            essential=True,
            environment=config.environment or None,
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix=config.name,
                log_group=self.log_group
            )
        )

        if config.container_port is not None:
            self.container.add_port_mappings(
                ecs.PortMapping(
                    container_port=config.container_port,
                    host_port=config.host_port,
                    protocol=ecs.Protocol.TCP
                )
            )

        # plain resource, the cluster has no auto scaling capacity provider
        self.service = ecs.CfnService(
            self, "Service",
            cluster=platform.cluster.cluster_name,
            service_name=config.name,
            task_definition=self.task_definition.task_definition_arn,
            desired_count=DESIRED_COUNT,
            launch_type="EC2",
            # one instance with static host ports: stop the old task before
            # starting the new one, and give up instead of waiting forever
            deployment_configuration=ecs.CfnService.DeploymentConfigurationProperty(
                maximum_percent=100,
                minimum_healthy_percent=0,
                deployment_circuit_breaker=ecs.CfnService.DeploymentCircuitBreakerProperty(
                    enable=True,
                    rollback=True
                )
            )
        )
        # the instance has to be up before the service can stabilise
        self.service.node.add_dependency(platform.instance)

    def _image(self, registry: ImageRegistry) -> ecs.ContainerImage:
        if self.config.uses_registry:
            return registry.image(self.config.tag)
        return ecs.ContainerImage.from_registry(self.config.image)
