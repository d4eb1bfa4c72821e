import logging
from typing import ClassVar, Dict, List, Optional, Type

from attrs import define, field

from resotoaurora.aws_client import AwsClient
from resotoaurora.config import ClusterConfig
from resotoaurora.naming import ENGINE, engine_major_version, performance_insights_enabled
from resotoaurora.error import ProvisionError
from resotoaurora.resources.base import AwsApiSpec, AwsResource, Change, ChangeAction, tag_list, tags_from_list
from resotoaurora.resources.ec2 import AwsEc2SecurityGroup, AwsVpc
from resotoaurora.resources.snapshot import FinalSnapshotIdentifier
from resotoaurora.types import Json

log = logging.getLogger("resoto.aurora")

service_name = "rds"

# How long to wait for clusters and instances: 120 attempts * 30 seconds
wait_delay = 30
wait_max_attempts = 120

PENDING_REBOOT = "pending-reboot"
FINAL_SNAPSHOT_TAG = "resoto:final-snapshot"


def delete_instance(client: AwsClient, identifier: str) -> None:
    # the data lives in the cluster: instances of a cluster have no own final snapshot
    client.call(service_name, "delete-db-instance", DBInstanceIdentifier=identifier)
    client.wait(
        service_name,
        "db_instance_deleted",
        delay=wait_delay,
        max_attempts=wait_max_attempts,
        DBInstanceIdentifier=identifier,
    )


@define(eq=False, slots=False)
class AwsRdsDbSubnetGroup(AwsResource):
    kind: ClassVar[str] = "aws_rds_db_subnet_group"
    read_apis: ClassVar[List[AwsApiSpec]] = [AwsApiSpec(service_name, "describe-db-subnet-groups")]
    mutator_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "create-db-subnet-group"),
        AwsApiSpec(service_name, "modify-db-subnet-group"),
        AwsApiSpec(service_name, "delete-db-subnet-group"),
    ]
    vpc: AwsVpc = field(kw_only=True)
    tags: Dict[str, str] = field(factory=dict, kw_only=True)

    @staticmethod
    def subnets_of(current: Json) -> List[str]:
        return sorted(s["SubnetIdentifier"] for s in current.get("Subnets") or [] if "SubnetIdentifier" in s)

    def read(self, client: AwsClient) -> Optional[Json]:
        groups = client.list(
            service_name,
            "describe-db-subnet-groups",
            "DBSubnetGroups",
            expected_errors=["DBSubnetGroupNotFoundFault"],
            DBSubnetGroupName=self.name,
        )
        return groups[0] if groups else None

    def diff(self, current: Optional[Json]) -> Change:
        if current is None:
            return Change.create()
        if self.subnets_of(current) != sorted(self.vpc.require("subnet_ids")):
            return Change(ChangeAction.update, ["subnets changed"])
        return Change.noop()

    def create(self, client: AwsClient) -> Json:
        return client.call(  # type: ignore
            service_name,
            "create-db-subnet-group",
            "DBSubnetGroup",
            DBSubnetGroupName=self.name,
            DBSubnetGroupDescription=f"Subnets of {self.name}",
            SubnetIds=sorted(self.vpc.require("subnet_ids")),
            Tags=tag_list(self.tags),
        )

    def update(self, client: AwsClient, current: Json, change: Change) -> Json:
        return client.call(  # type: ignore
            service_name,
            "modify-db-subnet-group",
            "DBSubnetGroup",
            DBSubnetGroupName=self.name,
            SubnetIds=sorted(self.vpc.require("subnet_ids")),
        )

    def delete(self, client: AwsClient, current: Json) -> None:
        client.call(service_name, "delete-db-subnet-group", DBSubnetGroupName=self.name)

    def refresh(self, current: Json) -> None:
        self.id = current.get("DBSubnetGroupName", self.name)
        self.arn = current.get("DBSubnetGroupArn")

    def outputs(self) -> Json:
        return {"name": self.name, "id": self.id, "arn": self.arn, "subnet_ids": self.vpc.subnet_ids}


@define
class DbParameter:
    """
    A parameter value of a parameter group.
    With apply method pending-reboot the value is staged on the group and only
    becomes effective when the instances using the group restart.
    """

    name: str
    value: str
    apply_method: str = PENDING_REBOOT

    def to_api(self) -> Json:
        return {"ParameterName": self.name, "ParameterValue": self.value, "ApplyMethod": self.apply_method}


@define(eq=False, slots=False)
class AwsRdsClusterParameterGroup(AwsResource):
    kind: ClassVar[str] = "aws_rds_cluster_parameter_group"
    read_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "describe-db-cluster-parameter-groups"),
        AwsApiSpec(service_name, "describe-db-cluster-parameters"),
    ]
    mutator_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "create-db-cluster-parameter-group"),
        AwsApiSpec(service_name, "modify-db-cluster-parameter-group"),
        AwsApiSpec(service_name, "delete-db-cluster-parameter-group"),
    ]
    # api names differ between the cluster and the instance flavour
    group_type: ClassVar[str] = "db-cluster-parameter-group"
    group_key: ClassVar[str] = "DBClusterParameterGroup"
    name_key: ClassVar[str] = "DBClusterParameterGroupName"
    parameters_action: ClassVar[str] = "describe-db-cluster-parameters"
    not_found_error: ClassVar[str] = "DBParameterGroupNotFound"

    family: str = field(kw_only=True)
    parameters: List[DbParameter] = field(factory=list, kw_only=True)
    tags: Dict[str, str] = field(factory=dict, kw_only=True)

    def read(self, client: AwsClient) -> Optional[Json]:
        groups = client.list(
            service_name,
            f"describe-{self.group_type}s",
            f"{self.group_key}s",
            expected_errors=[self.not_found_error],
            **{self.name_key: self.name},
        )
        if not groups:
            return None
        group: Json = groups[0]
        if self.parameters:
            group["Parameters"] = client.list(
                service_name, self.parameters_action, "Parameters", Source="user", **{self.name_key: self.name}
            )
        return group

    def staged_values(self, current: Json) -> Dict[str, Optional[str]]:
        return {p.get("ParameterName"): p.get("ParameterValue") for p in current.get("Parameters") or []}

    def diff(self, current: Optional[Json]) -> Change:
        if current is None:
            return Change.create()
        if current.get("DBParameterGroupFamily") != self.family:
            return Change(ChangeAction.replace, [f"family {current.get('DBParameterGroupFamily')} -> {self.family}"])
        staged = self.staged_values(current)
        reasons = [f"stage {p.name}={p.value}" for p in self.parameters if staged.get(p.name) != p.value]
        return Change(ChangeAction.update, reasons) if reasons else Change.noop()

    def create(self, client: AwsClient) -> Json:
        group = client.call(
            service_name,
            f"create-{self.group_type}",
            self.group_key,
            DBParameterGroupFamily=self.family,
            Description=f"{self.name} ({self.family})",
            Tags=tag_list(self.tags),
            **{self.name_key: self.name},
        )
        self.stage_parameters(client, self.parameters)
        return {**group, "Parameters": [p.to_api() for p in self.parameters]}  # type: ignore

    def update(self, client: AwsClient, current: Json, change: Change) -> Json:
        staged = self.staged_values(current)
        self.stage_parameters(client, [p for p in self.parameters if staged.get(p.name) != p.value])
        return {**current, "Parameters": [p.to_api() for p in self.parameters]}

    def stage_parameters(self, client: AwsClient, parameters: List[DbParameter]) -> None:
        """
        First phase of a parameter change: the values are stored in the group.
        Values with apply method pending-reboot are applied when the instance restarts.
        """
        if not parameters:
            return
        for p in parameters:
            log.info(f"Staging {p.name}={p.value} on {self.rid} (apply method: {p.apply_method})")
        client.call(
            service_name,
            f"modify-{self.group_type}",
            Parameters=[p.to_api() for p in parameters],
            **{self.name_key: self.name},
        )

    def users(self, client: AwsClient) -> List[str]:
        """Identifiers of the clusters that use this group."""
        clusters = client.list(service_name, "describe-db-clusters", "DBClusters")
        return sorted(c["DBClusterIdentifier"] for c in clusters if c.get("DBClusterParameterGroup") == self.name)

    def check_unused(self, client: AwsClient, current: Json) -> None:
        # RDS refuses to delete a group that is in use
        users = self.users(client)
        if users:
            raise ProvisionError(
                f"{self.rid} can not change the family from {current.get('DBParameterGroupFamily')} to {self.family} "
                f"while it is used by {', '.join(users)}: the major version upgrade has to be done manually"
            )

    def plan(self, client: AwsClient) -> Change:
        current = self.read(client)
        change = self.diff(current)
        if current is not None:
            if change.action == ChangeAction.replace:
                self.check_unused(client, current)
            self.refresh(current)
        return change

    def replace(self, client: AwsClient, current: Json) -> Json:
        self.check_unused(client, current)
        return super().replace(client, current)

    def delete(self, client: AwsClient, current: Json) -> None:
        client.call(service_name, f"delete-{self.group_type}", **{self.name_key: self.name})

    def refresh(self, current: Json) -> None:
        self.id = current.get(self.name_key, self.name)
        self.arn = current.get(f"{self.group_key}Arn")

    def outputs(self) -> Json:
        return {
            "name": self.name,
            "id": self.id,
            "arn": self.arn,
            "family": self.family,
            "parameters": {p.name: p.value for p in self.parameters},
        }


@define(eq=False, slots=False)
class AwsRdsDbParameterGroup(AwsRdsClusterParameterGroup):
    kind: ClassVar[str] = "aws_rds_db_parameter_group"
    read_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "describe-db-parameter-groups"),
        AwsApiSpec(service_name, "describe-db-parameters"),
    ]
    mutator_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "create-db-parameter-group"),
        AwsApiSpec(service_name, "modify-db-parameter-group"),
        AwsApiSpec(service_name, "delete-db-parameter-group"),
    ]
    group_type: ClassVar[str] = "db-parameter-group"
    group_key: ClassVar[str] = "DBParameterGroup"
    name_key: ClassVar[str] = "DBParameterGroupName"
    parameters_action: ClassVar[str] = "describe-db-parameters"

    def users(self, client: AwsClient) -> List[str]:
        """Identifiers of the instances that use this group."""
        instances = client.list(service_name, "describe-db-instances", "DBInstances")
        return sorted(
            i["DBInstanceIdentifier"]
            for i in instances
            if any(g.get("DBParameterGroupName") == self.name for g in i.get("DBParameterGroups") or [])
        )


@define(eq=False, slots=False)
class AwsRdsCluster(AwsResource):
    kind: ClassVar[str] = "aws_rds_cluster"
    read_apis: ClassVar[List[AwsApiSpec]] = [AwsApiSpec(service_name, "describe-db-clusters")]
    mutator_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "create-db-cluster"),
        AwsApiSpec(service_name, "restore-db-cluster-from-snapshot"),
        AwsApiSpec(service_name, "modify-db-cluster"),
        AwsApiSpec(service_name, "delete-db-cluster"),
        AwsApiSpec(service_name, "add-tags-to-resource"),
    ]

    config: ClusterConfig = field(kw_only=True, repr=False)
    security_group: AwsEc2SecurityGroup = field(kw_only=True)
    subnet_group_name: str = field(kw_only=True)
    parameter_group: AwsRdsClusterParameterGroup = field(kw_only=True)
    final_snapshot: FinalSnapshotIdentifier = field(kw_only=True)
    port: int = field(default=3306, kw_only=True)
    tags: Dict[str, str] = field(factory=dict, kw_only=True)
    engine: str = field(default=ENGINE, kw_only=True)
    # computed
    endpoint: Optional[str] = field(default=None, kw_only=True)
    reader_endpoint: Optional[str] = field(default=None, kw_only=True)
    status: Optional[str] = field(default=None, kw_only=True)

    def read(self, client: AwsClient) -> Optional[Json]:
        clusters = client.list(
            service_name,
            "describe-db-clusters",
            "DBClusters",
            expected_errors=["DBClusterNotFoundFault"],
            DBClusterIdentifier=self.name,
        )
        return clusters[0] if clusters else None

    def diff(self, current: Optional[Json]) -> Change:
        if current is None:
            if self.config.snapshot_identifier:
                return Change(ChangeAction.create, [f"restore from snapshot {self.config.snapshot_identifier}"])
            return Change.create()

        # attributes that can not be changed
        replace = []
        if current.get("Engine") != self.engine:
            replace.append(f"engine {current.get('Engine')} -> {self.engine}")
        if (
            self.config.database_name
            and not self.config.snapshot_identifier
            and current.get("DatabaseName") != self.config.database_name
        ):
            replace.append(f"database name {current.get('DatabaseName')} -> {self.config.database_name}")
        if replace:
            if current.get("DeletionProtection") and self.config.deletion_protection:
                raise ProvisionError(
                    f"{self.rid} needs to be replaced ({', '.join(replace)}), but deletion protection is enabled: "
                    "set deletion_protection to false to allow the replacement"
                )
            members = self.members(current)
            if members:
                replace.append(f"instances {', '.join(members)} are created again")
            return Change(ChangeAction.replace, replace)

        update = []
        if current.get("EngineVersion") != self.config.engine_version:
            update.append(f"engine version {current.get('EngineVersion')} -> {self.config.engine_version}")
        if bool(current.get("DeletionProtection")) != self.config.deletion_protection:
            update.append(f"deletion protection -> {self.config.deletion_protection}")
        if current.get("DBClusterParameterGroup") != self.parameter_group.name:
            update.append(f"cluster parameter group -> {self.parameter_group.name}")
        security_groups = {g.get("VpcSecurityGroupId") for g in current.get("VpcSecurityGroups") or []}
        if security_groups != {self.security_group.require("id")}:
            update.append("security groups changed")
        if current.get("Port") is not None and current.get("Port") != self.port:
            update.append(f"port {current.get('Port')} -> {self.port}")
        if self.changed_tags(current):
            update.append("tags changed")
        return Change(ChangeAction.update, update) if update else Change.noop()

    @staticmethod
    def members(current: Json) -> List[str]:
        return sorted(m["DBInstanceIdentifier"] for m in current.get("DBClusterMembers") or [])

    def desired_tags(self) -> Dict[str, str]:
        return {**self.tags, FINAL_SNAPSHOT_TAG: self.final_snapshot.require("id")}

    def changed_tags(self, current: Json) -> Dict[str, str]:
        existing = tags_from_list(current.get("TagList"))
        return {k: v for k, v in self.desired_tags().items() if existing.get(k) != v}

    def __common_args(self) -> Json:
        return dict(
            DBClusterIdentifier=self.name,
            Engine=self.engine,
            EngineVersion=self.config.engine_version,
            DBSubnetGroupName=self.subnet_group_name,
            VpcSecurityGroupIds=[self.security_group.require("id")],
            DBClusterParameterGroupName=self.parameter_group.name,
            DeletionProtection=self.config.deletion_protection,
            Port=self.port,
            Tags=tag_list(self.desired_tags()),
        )

    def create(self, client: AwsClient) -> Json:
        if self.config.snapshot_identifier:
            log.info(f"Restoring {self.rid} from snapshot {self.config.snapshot_identifier}")
            client.call(
                service_name,
                "restore-db-cluster-from-snapshot",
                SnapshotIdentifier=self.config.snapshot_identifier,
                **self.__common_args(),
            )
            self.wait_available(client)
            # the master password of a restored cluster is the one of the snapshot
            client.call(
                service_name,
                "modify-db-cluster",
                DBClusterIdentifier=self.name,
                MasterUserPassword=self.config.master_password,
                ApplyImmediately=True,
            )
        else:
            args = self.__common_args()
            if self.config.database_name:
                args["DatabaseName"] = self.config.database_name
            client.call(
                service_name,
                "create-db-cluster",
                MasterUsername=self.config.master_username,
                MasterUserPassword=self.config.master_password,
                **args,
            )
        return self.wait_available(client)

    def update(self, client: AwsClient, current: Json, change: Change) -> Json:
        args: Json = {}
        if current.get("EngineVersion") != self.config.engine_version:
            args["EngineVersion"] = self.config.engine_version
            current_major = engine_major_version(current.get("EngineVersion") or "")
            if current_major != engine_major_version(self.config.engine_version):
                args["AllowMajorVersionUpgrade"] = True
        if bool(current.get("DeletionProtection")) != self.config.deletion_protection:
            args["DeletionProtection"] = self.config.deletion_protection
        if current.get("DBClusterParameterGroup") != self.parameter_group.name:
            args["DBClusterParameterGroupName"] = self.parameter_group.name
        security_groups = {g.get("VpcSecurityGroupId") for g in current.get("VpcSecurityGroups") or []}
        if security_groups != {self.security_group.require("id")}:
            args["VpcSecurityGroupIds"] = [self.security_group.require("id")]
        if current.get("Port") is not None and current.get("Port") != self.port:
            args["Port"] = self.port
        if args:
            client.call(
                service_name,
                "modify-db-cluster",
                DBClusterIdentifier=self.name,
                ApplyImmediately=self.config.apply_immediately,
                **args,
            )
            current = self.wait_available(client)
        tags = self.changed_tags(current)
        if tags:
            client.call(service_name, "add-tags-to-resource", ResourceName=current["DBClusterArn"], Tags=tag_list(tags))
            current = self.read(client)  # type: ignore
        return current

    def replace(self, client: AwsClient, current: Json) -> Json:
        """
        The instances of the cluster are deleted first: they are created again by their own reconcile.
        The final snapshot of the old cluster uses the identifier, so the new cluster gets a fresh one.
        """
        if current.get("DeletionProtection"):
            client.call(
                service_name,
                "modify-db-cluster",
                DBClusterIdentifier=self.name,
                DeletionProtection=False,
                ApplyImmediately=True,
            )
            self.wait_available(client)
        for member in self.members(current):
            log.info(f"Deleting instance {member} of {self.rid}")
            delete_instance(client, member)
        self.delete(client, current)
        self.final_snapshot.rotate(client)
        return self.create(client)

    def destroy_blocked(self, client: AwsClient) -> Optional[str]:
        current = self.read(client)
        if current is not None and current.get("DeletionProtection"):
            return f"{self.rid} has deletion protection enabled: set deletion_protection to false and apply first"
        return None

    def delete(self, client: AwsClient, current: Json) -> None:
        """
        A cluster is never deleted without a final snapshot.
        The deletion only counts as done once the snapshot is available.
        """
        snapshot_id = self.final_snapshot.require("id")
        log.info(f"Deleting {self.rid} with final snapshot {snapshot_id}")
        client.call(
            service_name,
            "delete-db-cluster",
            DBClusterIdentifier=self.name,
            SkipFinalSnapshot=False,
            FinalDBSnapshotIdentifier=snapshot_id,
        )
        client.wait(
            service_name,
            "db_cluster_snapshot_available",
            delay=wait_delay,
            max_attempts=wait_max_attempts,
            DBClusterSnapshotIdentifier=snapshot_id,
        )
        client.wait(
            service_name,
            "db_cluster_deleted",
            delay=wait_delay,
            max_attempts=wait_max_attempts,
            DBClusterIdentifier=self.name,
        )
        log.info(f"Final snapshot {snapshot_id} of {self.rid} is available")

    def wait_available(self, client: AwsClient) -> Json:
        client.wait(
            service_name,
            "db_cluster_available",
            delay=wait_delay,
            max_attempts=wait_max_attempts,
            DBClusterIdentifier=self.name,
        )
        return self.read(client)  # type: ignore

    def refresh(self, current: Json) -> None:
        self.id = current.get("DBClusterIdentifier", self.name)
        self.arn = current.get("DBClusterArn")
        self.endpoint = current.get("Endpoint")
        self.reader_endpoint = current.get("ReaderEndpoint")
        self.status = current.get("Status")
        if current.get("Port"):
            self.port = current["Port"]

    def outputs(self) -> Json:
        return {
            "name": self.name,
            "id": self.id,
            "arn": self.arn,
            "endpoint": self.endpoint,
            "reader_endpoint": self.reader_endpoint,
            "port": self.port,
            "engine": self.engine,
            "engine_version": self.config.engine_version,
            "database_name": self.config.database_name,
            "master_username": self.config.master_username,
            "deletion_protection": self.config.deletion_protection,
            "final_snapshot_identifier": self.final_snapshot.id,
            "parameter_group": self.parameter_group.name,
            "subnet_group": self.subnet_group_name,
        }


@define(eq=False, slots=False)
class AwsRdsInstance(AwsResource):
    kind: ClassVar[str] = "aws_rds_instance"
    read_apis: ClassVar[List[AwsApiSpec]] = [AwsApiSpec(service_name, "describe-db-instances")]
    mutator_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "create-db-instance"),
        AwsApiSpec(service_name, "modify-db-instance"),
        AwsApiSpec(service_name, "reboot-db-instance"),
        AwsApiSpec(service_name, "delete-db-instance"),
    ]

    cluster: AwsRdsCluster = field(kw_only=True)
    parameter_group: AwsRdsDbParameterGroup = field(kw_only=True)
    subnet_group_name: str = field(kw_only=True)
    instance_type: str = field(kw_only=True)
    ordinal: int = field(kw_only=True)
    apply_immediately: bool = field(default=True, kw_only=True)
    reboot_pending: bool = field(default=False, kw_only=True)
    tags: Dict[str, str] = field(factory=dict, kw_only=True)
    # computed
    endpoint: Optional[str] = field(default=None, kw_only=True)
    parameter_apply_status: Optional[str] = field(default=None, kw_only=True)
    writer: Optional[bool] = field(default=None, kw_only=True)

    @property
    def performance_insights_enabled(self) -> bool:
        # derived from the instance type on every reconcile, not configurable
        return performance_insights_enabled(self.instance_type)

    @staticmethod
    def apply_status(current: Json, group_name: str) -> Optional[str]:
        for group in current.get("DBParameterGroups") or []:
            if group.get("DBParameterGroupName") == group_name:
                return group.get("ParameterApplyStatus")
        return None

    def read(self, client: AwsClient) -> Optional[Json]:
        instances = client.list(
            service_name,
            "describe-db-instances",
            "DBInstances",
            expected_errors=["DBInstanceNotFound", "DBInstanceNotFoundFault"],
            DBInstanceIdentifier=self.name,
        )
        return instances[0] if instances else None

    def diff(self, current: Optional[Json]) -> Change:
        if current is None:
            return Change.create()
        current_cluster = current.get("DBClusterIdentifier")
        if current_cluster != self.cluster.name:
            return Change(ChangeAction.replace, [f"cluster {current_cluster} -> {self.cluster.name}"])
        update = []
        if current.get("DBInstanceClass") != self.instance_type:
            update.append(f"instance class {current.get('DBInstanceClass')} -> {self.instance_type}")
        if bool(current.get("PerformanceInsightsEnabled")) != self.performance_insights_enabled:
            update.append(f"performance insights -> {self.performance_insights_enabled}")
        if self.apply_status(current, self.parameter_group.name) is None:
            update.append(f"parameter group -> {self.parameter_group.name}")
        elif self.reboot_pending and self.apply_status(current, self.parameter_group.name) == PENDING_REBOOT:
            update.append("parameters pending reboot")
        return Change(ChangeAction.update, update) if update else Change.noop()

    def create(self, client: AwsClient) -> Json:
        client.call(
            service_name,
            "create-db-instance",
            DBInstanceIdentifier=self.name,
            DBClusterIdentifier=self.cluster.require("id"),
            DBInstanceClass=self.instance_type,
            Engine=self.cluster.engine,
            DBParameterGroupName=self.parameter_group.name,
            DBSubnetGroupName=self.subnet_group_name,
            EnablePerformanceInsights=self.performance_insights_enabled,
            PubliclyAccessible=False,
            Tags=tag_list(self.tags),
        )
        return self.wait_available(client)

    def update(self, client: AwsClient, current: Json, change: Change) -> Json:
        args: Json = {}
        if current.get("DBInstanceClass") != self.instance_type:
            args["DBInstanceClass"] = self.instance_type
        if bool(current.get("PerformanceInsightsEnabled")) != self.performance_insights_enabled:
            args["EnablePerformanceInsights"] = self.performance_insights_enabled
        if self.apply_status(current, self.parameter_group.name) is None:
            args["DBParameterGroupName"] = self.parameter_group.name
        if args:
            client.call(
                service_name,
                "modify-db-instance",
                DBInstanceIdentifier=self.name,
                ApplyImmediately=self.apply_immediately,
                **args,
            )
            current = self.wait_available(client)
        return self.apply_pending_parameters(client, current)

    def apply_pending_parameters(self, client: AwsClient, current: Json) -> Json:
        """
        Second phase of a parameter change: staged values become effective with a restart.
        Only done if reboots are allowed, otherwise the values are applied at the next restart.
        """
        if self.apply_status(current, self.parameter_group.name) != PENDING_REBOOT:
            return current
        if not self.reboot_pending:
            log.warning(
                f"Parameters of {self.parameter_group.name} are staged on {self.rid} "
                "and take effect with the next restart"
            )
            return current
        log.info(f"Rebooting {self.rid} to apply staged parameters of {self.parameter_group.name}")
        client.call(service_name, "reboot-db-instance", DBInstanceIdentifier=self.name)
        return self.wait_available(client)

    def delete(self, client: AwsClient, current: Json) -> None:
        delete_instance(client, self.name)

    def wait_available(self, client: AwsClient) -> Json:
        client.wait(
            service_name,
            "db_instance_available",
            delay=wait_delay,
            max_attempts=wait_max_attempts,
            DBInstanceIdentifier=self.name,
        )
        return self.read(client)  # type: ignore

    def refresh(self, current: Json) -> None:
        self.id = current.get("DBInstanceIdentifier", self.name)
        self.arn = current.get("DBInstanceArn")
        self.endpoint = (current.get("Endpoint") or {}).get("Address")
        self.parameter_apply_status = self.apply_status(current, self.parameter_group.name)

    def outputs(self) -> Json:
        return {
            "name": self.name,
            "id": self.id,
            "arn": self.arn,
            "cluster": self.cluster.name,
            "instance_class": self.instance_type,
            "endpoint": self.endpoint,
            "performance_insights_enabled": self.performance_insights_enabled,
            "parameter_group": self.parameter_group.name,
            "parameter_apply_status": self.parameter_apply_status,
        }


resources: List[Type[AwsResource]] = [
    AwsRdsDbSubnetGroup,
    AwsRdsClusterParameterGroup,
    AwsRdsDbParameterGroup,
    AwsRdsCluster,
    AwsRdsInstance,
]
