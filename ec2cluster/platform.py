from aws_cdk import (
    aws_ecs as ecs,
    aws_ec2 as ec2,
    aws_iam as iam,
)
from constructs import Construct

from .config import ECS_CONFIG_PATH, Settings

# managed policies attached to the container instance role
INSTANCE_MANAGED_POLICIES = (
    "service-role/AmazonEC2ContainerServiceforEC2Role",
    "AmazonSSMManagedInstanceCore",
)


class ClusterPlatform(Construct):
    """
    The network, the ECS cluster and the single EC2 container instance that
    joins it.
    """

    def __init__(self, scope: Construct, id: str, settings: Settings) -> None:
        super().__init__(scope, id)

        self.settings = settings

        # Create a VPC for the cluster
        self.vpc = ec2.Vpc(
            self, "Vpc",
            vpc_name=f"{settings.cluster_name}-vpc",
            max_azs=2,
            nat_gateways=0,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="public",
                    subnet_type=ec2.SubnetType.PUBLIC,
                    cidr_mask=24
                )
            ],
            enable_dns_hostnames=True,
            enable_dns_support=True
        )

        # create the cluster the instance registers into
        self.cluster = ecs.Cluster(self, "Cluster",
            vpc=self.vpc,
            cluster_name=settings.cluster_name
        )

        # role assumed by the container instance
        self.instance_role = iam.Role(
            self, "InstanceRole",
            assumed_by=iam.ServicePrincipal("ec2.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(name)
                for name in INSTANCE_MANAGED_POLICIES
            ]
        )

        self.instance_profile = iam.InstanceProfile(
            self, "InstanceProfile",
            role=self.instance_role,
            instance_profile_name=f"{settings.cluster_name}-instance-profile"
        )

        # wide open placeholder, tighten before running anything real
        self.security_group = ec2.SecurityGroup(
            self, "InstanceSecurityGroup",
            vpc=self.vpc,
            description=f"Container instances of {settings.cluster_name}",
            allow_all_outbound=True
        )
        self.security_group.add_ingress_rule(
            ec2.Peer.any_ipv4(),
            ec2.Port.all_traffic(),
            "Allow all inbound traffic"
        )

        self.user_data = self.startup_script(settings.cluster_name)

        key_pair = None
        if settings.key_pair_name:
            key_pair = ec2.KeyPair.from_key_pair_name(
                self, "KeyPair", settings.key_pair_name
            )

        self.instance = ec2.Instance(
            self, "Instance",
            vpc=self.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PUBLIC),
            instance_type=ec2.InstanceType(settings.instance_type),
            machine_image=self.machine_image(settings),
            security_group=self.security_group,
            instance_profile=self.instance_profile,
            user_data=self.user_data,
            key_pair=key_pair
        )

    @staticmethod
    def startup_script(cluster_name: str) -> ec2.UserData:
        """Registers the instance into ``cluster_name`` on first boot."""
        user_data = ec2.UserData.for_linux()
        user_data.add_commands(f"echo ECS_CLUSTER={cluster_name} >> {ECS_CONFIG_PATH}")
        return user_data

    @staticmethod
    def machine_image(settings: Settings) -> ec2.IMachineImage:
        # a pinned AMI has to be an ECS-optimized one or the agent never starts
        if settings.ami_id:
            return ec2.MachineImage.generic_linux({settings.region: settings.ami_id})
        return ecs.EcsOptimizedImage.amazon_linux2023()
