from typing import Optional

from resotoaurora.config import ClusterConfig, ModuleConfig
from resotoaurora.context import ProvisionContext
from resotoaurora.error import DependencyNotSatisfied
from resotoaurora.graph import ResourceGraph
from resotoaurora.logger import log
from resotoaurora.naming import (
    cluster_parameter_group_name,
    db_parameter_group_name,
    dns_readonly_record_name,
    dns_record_name,
    engine_family,
    engine_name,
    instance_identifiers,
    security_group_name,
    subnet_group_name,
)
from resotoaurora.resources.ec2 import AwsEc2SecurityGroup, AwsVpc
from resotoaurora.resources.rds import (
    AwsRdsCluster,
    AwsRdsClusterParameterGroup,
    AwsRdsDbParameterGroup,
    AwsRdsDbSubnetGroup,
    AwsRdsInstance,
    DbParameter,
)
from resotoaurora.resources.route53 import AwsRoute53Record, AwsRoute53Zone
from resotoaurora.resources.snapshot import FinalSnapshotIdentifier
from resotoaurora.state import StateFile

# staged on every instance parameter group, effective after the next reboot
instance_parameters = [DbParameter("max_connections", "5000")]


class GraphBuilder:
    """
    Translates the module configuration into the graph of resources.

    Resources shared by all clusters (network, hosted zone) are only added if there is at least one cluster.
    A cluster whose dependencies can not be satisfied is left out with a warning.
    """

    def __init__(self, config: ModuleConfig, context: ProvisionContext, state: StateFile) -> None:
        self.config = config
        self.context = context
        self.state = state
        self.graph = ResourceGraph()
        self.security_group: Optional[AwsEc2SecurityGroup] = None
        self.subnet_group: Optional[AwsRdsDbSubnetGroup] = None
        self.zone: Optional[AwsRoute53Zone] = None

    @property
    def module_name(self) -> str:
        return self.config.name  # type: ignore

    def build(self) -> ResourceGraph:
        if not self.config.clusters:
            log.info(f"Module {self.module_name} defines no clusters")
            return self.graph
        self.add_shared_resources()
        for cluster_key, cluster in sorted(self.config.clusters.items()):
            self.add_cluster(cluster_key, cluster)
        log.debug(f"Resource graph of {self.module_name}: {self.graph.number_of_nodes()} resources")
        return self.graph.validate()

    def add_shared_resources(self) -> None:
        config = self.config
        network = config.network
        vpc = AwsVpc(network.vpc_id, cidr_block=network.cidr_block, subnet_ids=network.subnet_ids)  # type: ignore
        self.graph.add_resource(vpc)
        self.security_group = AwsEc2SecurityGroup(
            security_group_name(self.module_name, config.security_group_name),
            vpc=vpc,
            port=config.port,
            tags=self.context.resource_tags(),
        )
        self.graph.add_resource(self.security_group, vpc)
        self.subnet_group = AwsRdsDbSubnetGroup(
            subnet_group_name(self.module_name, config.subnet_group_name),
            vpc=vpc,
            tags=self.context.resource_tags(),
        )
        self.graph.add_resource(self.subnet_group, vpc)
        self.zone = AwsRoute53Zone(
            config.internal_root_domain or config.internal_zone_id,  # type: ignore
            zone_id=config.internal_zone_id,
            domain=config.internal_root_domain,
        )
        self.graph.add_resource(self.zone)

    def add_cluster(self, cluster_key: str, cluster: ClusterConfig) -> None:
        assert self.security_group and self.subnet_group and self.zone, "Shared resources are missing"
        graph = self.graph
        family = engine_family(cluster.engine_version)
        if family is None:
            reason = DependencyNotSatisfied(
                f"aws_rds_cluster:{cluster_key}", f"parameter group family of engine {cluster.engine_version}"
            )
            graph.exclude(cluster_key, reason)
            return

        tags = self.context.resource_tags(**{"resoto:cluster": cluster_key})
        cluster_pg = AwsRdsClusterParameterGroup(
            cluster_parameter_group_name(self.module_name, cluster_key),
            cluster_key=cluster_key,
            family=family,
            tags=tags,
        )
        graph.add_resource(cluster_pg)
        db_pg = AwsRdsDbParameterGroup(
            db_parameter_group_name(self.module_name, cluster_key),
            cluster_key=cluster_key,
            family=family,
            parameters=list(instance_parameters),
            tags=tags,
        )
        graph.add_resource(db_pg)
        final_snapshot = FinalSnapshotIdentifier(
            f"{self.module_name}-{cluster_key}",
            cluster_key=cluster_key,
            module_name=self.module_name,
            keepers=FinalSnapshotIdentifier.keepers_for(
                self.module_name, cluster_key, cluster.engine_version, cluster.db_subnet_group_name
            ),
            state=self.state,
        )
        graph.add_resource(final_snapshot)

        # an existing subnet group can be defined per cluster: it is not managed here
        subnet_group = None if cluster.db_subnet_group_name else self.subnet_group
        subnet_name = cluster.db_subnet_group_name or self.subnet_group.name
        rds_cluster = AwsRdsCluster(
            cluster_key,
            cluster_key=cluster_key,
            config=cluster,
            security_group=self.security_group,
            subnet_group_name=subnet_name,
            parameter_group=cluster_pg,
            final_snapshot=final_snapshot,
            port=self.config.port,
            tags=tags,
            engine=engine_name(cluster.engine_version),
        )
        graph.add_resource(rds_cluster, self.security_group, cluster_pg, final_snapshot, subnet_group)

        for num, identifier in enumerate(instance_identifiers(cluster_key, cluster.instance_count)):
            instance = AwsRdsInstance(
                identifier,
                cluster_key=cluster_key,
                cluster=rds_cluster,
                parameter_group=db_pg,
                subnet_group_name=subnet_name,
                instance_type=cluster.instance_type,
                ordinal=num,
                apply_immediately=cluster.apply_immediately,
                reboot_pending=self.config.reboot_pending_instances,
                tags=tags,
            )
            graph.add_resource(instance, rds_cluster, db_pg, subnet_group)

        subdomain: str = self.config.internal_subdomain  # type: ignore
        for record_name, reader in [
            (dns_record_name(cluster_key, subdomain), False),
            (dns_readonly_record_name(cluster_key, subdomain), True),
        ]:
            record = AwsRoute53Record(
                record_name, cluster_key=cluster_key, zone=self.zone, cluster=rds_cluster, reader=reader
            )
            graph.add_resource(record, self.zone, rds_cluster)


def build_graph(config: ModuleConfig, context: ProvisionContext, state: StateFile) -> ResourceGraph:
    return GraphBuilder(config, context, state).build()
