from aws_cdk import (
    aws_ecr as ecr,
    aws_ecs as ecs,
    RemovalPolicy,
)
from constructs import Construct


class ImageRegistry(Construct):
    def __init__(self, scope: Construct, id: str, repository_name: str) -> None:
        super().__init__(scope, id)

        # tags are mutable so `latest` can be pushed over and over
        self.repository = ecr.Repository(
            self, "Repository",
            repository_name=repository_name,
            image_tag_mutability=ecr.TagMutability.MUTABLE,
            image_scan_on_push=True,
            removal_policy=RemovalPolicy.DESTROY,
            empty_on_delete=True
        )

    def image(self, tag: str) -> ecs.ContainerImage:
        return ecs.ContainerImage.from_ecr_repository(self.repository, tag=tag)
