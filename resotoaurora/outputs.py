from typing import Optional

from resotoaurora.graph import ResourceGraph
from resotoaurora.resources.ec2 import AwsEc2SecurityGroup
from resotoaurora.resources.rds import (
    AwsRdsCluster,
    AwsRdsClusterParameterGroup,
    AwsRdsDbParameterGroup,
    AwsRdsDbSubnetGroup,
    AwsRdsInstance,
)
from resotoaurora.resources.route53 import AwsRoute53Record
from resotoaurora.types import Json


def module_outputs(graph: ResourceGraph) -> Json:
    """
    Outputs of all clusters, every section keyed by the cluster name.
    Values of resources that do not exist (yet) are null.
    """
    result: Json = {
        "subnet_groups": {},
        "security_groups": {},
        "parameter_groups": {},
        "clusters": {},
        "instances": {},
        "dns_records": {},
    }
    subnet_groups = {sg.name: sg for sg in graph.resources_of(AwsRdsDbSubnetGroup)}
    for cluster in graph.resources_of(AwsRdsCluster):
        key: str = cluster.cluster_key  # type: ignore
        subnet_group: Optional[AwsRdsDbSubnetGroup] = subnet_groups.get(cluster.subnet_group_name)
        # a subnet group defined per cluster is not managed by this module
        result["subnet_groups"][key] = (
            subnet_group.outputs() if subnet_group else {"name": cluster.subnet_group_name, "managed": False}
        )
        security_group: AwsEc2SecurityGroup = cluster.security_group
        result["security_groups"][key] = security_group.outputs()
        instance_pgs = graph.resources_of(AwsRdsDbParameterGroup, key)
        cluster_pgs = [
            pg for pg in graph.resources_of(AwsRdsClusterParameterGroup, key) if pg not in instance_pgs
        ]
        result["parameter_groups"][key] = {
            "cluster": cluster_pgs[0].outputs() if cluster_pgs else None,
            "instance": instance_pgs[0].outputs() if instance_pgs else None,
        }
        result["clusters"][key] = cluster.outputs()
        instances = sorted(graph.resources_of(AwsRdsInstance, key), key=lambda i: i.ordinal)
        result["instances"][key] = [instance.outputs() for instance in instances]
        records = {"reader" if r.reader else "writer": r.outputs() for r in graph.resources_of(AwsRoute53Record, key)}
        result["dns_records"][key] = records
    return result
