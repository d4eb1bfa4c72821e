from typing import List, Type

from resotoaurora.resources import ec2, rds, route53, snapshot
from resotoaurora.resources.base import AwsResource

all_resources: List[Type[AwsResource]] = ec2.resources + snapshot.resources + rds.resources + route53.resources


def required_permissions() -> List[str]:
    """IAM actions needed to plan, apply and destroy a module."""
    return sorted({api.iam_permission() for resource in all_resources for api in resource.called_apis()})
