import json
from pathlib import Path

import pytest

from ec2cluster.config import (
    DEFAULT_CLUSTER_NAME,
    DEFAULT_INSTANCE_TYPE,
    ConfigError,
    load_services,
    load_settings,
)

BASE_ENV = {"AWS_ACCOUNT_ID": "123456789012", "AWS_REGION": "eu-west-1"}


def test_settings_defaults():
    settings = load_settings(dict(BASE_ENV))
    assert settings.account == "123456789012"
    assert settings.region == "eu-west-1"
    assert settings.cluster_name == DEFAULT_CLUSTER_NAME
    assert settings.instance_type == DEFAULT_INSTANCE_TYPE
    assert settings.ami_id is None
    assert settings.key_pair_name is None
    assert settings.registry_name == DEFAULT_CLUSTER_NAME


def test_settings_overrides():
    env = dict(
        BASE_ENV,
        CLUSTER_NAME="demo",
        INSTANCE_TYPE="t3.medium",
        AMI_ID="ami-0abcdef1234567890",
        KEY_PAIR_NAME="my-key",
        REPOSITORY_NAME="demo-images",
    )
    settings = load_settings(env)
    assert settings.cluster_name == "demo"
    assert settings.instance_type == "t3.medium"
    assert settings.ami_id == "ami-0abcdef1234567890"
    assert settings.key_pair_name == "my-key"
    assert settings.registry_name == "demo-images"


def test_blank_optional_values_fall_back_to_defaults():
    settings = load_settings(dict(BASE_ENV, AMI_ID="", KEY_PAIR_NAME="  ", CLUSTER_NAME=""))
    assert settings.ami_id is None
    assert settings.key_pair_name is None
    assert settings.cluster_name == DEFAULT_CLUSTER_NAME


@pytest.mark.parametrize("missing", ["AWS_ACCOUNT_ID", "AWS_REGION"])
def test_settings_require_account_and_region(missing):
    env = dict(BASE_ENV)
    del env[missing]
    with pytest.raises(ConfigError, match=missing):
        load_settings(env)


@pytest.mark.parametrize(
    "key,value",
    [
        ("CLUSTER_NAME", "My_Cluster"),
        ("CLUSTER_NAME", "-leading-dash"),
        ("REPOSITORY_NAME", "Images"),
        ("AMI_ID", "ubuntu-22.04"),
    ],
)
def test_settings_reject_bad_values(key, value):
    with pytest.raises(ConfigError, match=key):
        load_settings(dict(BASE_ENV, **{key: value}))


def test_no_services():
    assert load_services(None) == []
    assert load_services([]) == []


def test_service_defaults():
    (service,) = load_services([{"name": "web"}])
    assert service.name == "web"
    assert service.image is None
    assert service.uses_registry
    assert service.tag == "latest"
    assert service.cpu == 256
    assert service.memory == 512
    assert service.container_port is None
    assert service.host_port is None
    assert service.environment == {}


def test_host_port_defaults_to_container_port():
    (service,) = load_services([{"name": "web", "containerPort": 8000}])
    assert service.container_port == 8000
    assert service.host_port == 8000


def test_services_from_json_string():
    raw = '[{"name": "api", "image": "nginx:1.25", "cpu": 512, "memory": 1024,' \
          ' "containerPort": 80, "hostPort": 8080, "environment": {"A": "b"}}]'
    (service,) = load_services(raw)
    assert service.image == "nginx:1.25"
    assert not service.uses_registry
    assert (service.cpu, service.memory) == (512, 1024)
    assert (service.container_port, service.host_port) == (80, 8080)
    assert service.environment == {"A": "b"}


def test_invalid_json():
    with pytest.raises(ConfigError, match="not valid JSON"):
        load_services("[{")


def test_services_must_be_a_list():
    with pytest.raises(ConfigError, match="must be a list"):
        load_services({"name": "web"})


@pytest.mark.parametrize(
    "entry,message",
    [
        ("web", "must be objects"),
        ({}, "service name"),
        ({"name": "Web"}, "service name"),
        ({"name": "web", "cpu": 0}, "cpu"),
        ({"name": "web", "memory": -1}, "memory"),
        ({"name": "web", "memory": "512"}, "memory"),
        ({"name": "web", "containerPort": 70000}, "containerPort"),
        ({"name": "web", "containerPort": True}, "containerPort"),
        ({"name": "web", "hostPort": 80}, "hostPort needs a containerPort"),
        ({"name": "web", "image": ""}, "image"),
        ({"name": "web", "tag": ""}, "tag"),
        ({"name": "web", "environment": {"A": 1}}, "environment"),
        ({"name": "web", "environment": []}, "environment"),
        ({"name": "web", "environment": ""}, "environment"),
    ],
)
def test_invalid_service(entry, message):
    with pytest.raises(ConfigError, match=message):
        load_services([entry])


def test_duplicate_service_names():
    with pytest.raises(ConfigError, match="more than once"):
        load_services([{"name": "web"}, {"name": "web"}])


def test_duplicate_host_ports():
    with pytest.raises(ConfigError, match="hostPort 80 is already used by web"):
        load_services(
            [
                {"name": "web", "containerPort": 80},
                {"name": "admin", "containerPort": 8080, "hostPort": 80},
            ]
        )


def test_distinct_host_ports():
    web, admin = load_services(
        [
            {"name": "web", "containerPort": 80},
            {"name": "admin", "containerPort": 80, "hostPort": 8080},
        ]
    )
    assert (web.host_port, admin.host_port) == (80, 8080)


def test_default_services_use_public_images():
    context = json.loads((Path(__file__).parent.parent / "cdk.json").read_text())["context"]
    services = load_services(context["services"])
    assert services
    # the repository is empty right after the first deploy
    assert not any(service.uses_registry for service in services)
