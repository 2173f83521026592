#!/usr/bin/env python3
import logging
import sys

from aws_cdk import App

from ec2cluster.config import ConfigError, load_services, load_settings
from ec2cluster.stack import Ec2ClusterStack

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("ec2cluster")

app = App()

# account, region and instance settings come from .env, services from cdk.json
try:
    settings = load_settings()
    services = load_services(app.node.try_get_context("services"))
except ConfigError as e:
    logger.error("Invalid configuration: %s", e)
    sys.exit(1)

Ec2ClusterStack(app, "Ec2Cluster", settings=settings, services=services)

app.synth()
