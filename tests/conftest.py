import pytest
from aws_cdk import App
from aws_cdk.assertions import Template

from ec2cluster.config import ServiceConfig, Settings
from ec2cluster.stack import Ec2ClusterStack


@pytest.fixture
def settings():
    return Settings(
        account="123456789012",
        region="us-east-1",
        cluster_name="test-cluster",
        instance_type="t3.small",
        ami_id="ami-0123456789abcdef0",
        key_pair_name="deploy-key",
    )


@pytest.fixture
def services():
    return [
        ServiceConfig(name="web", container_port=80, host_port=8080),
        ServiceConfig(
            name="worker",
            image="public.ecr.aws/docker/library/busybox:latest",
            cpu=128,
            memory=256,
            environment={"MODE": "batch"},
        ),
    ]


@pytest.fixture
def synth():
    def _synth(settings, services=()):
        stack = Ec2ClusterStack(App(), "TestStack", settings=settings, services=services)
        return stack, Template.from_stack(stack)

    return _synth


@pytest.fixture
def template(synth, settings, services):
    return synth(settings, services)[1]
