import threading
from copy import deepcopy
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple

from attrs import define, field
from boto3 import Session
from botocore.exceptions import ClientError

from resotoaurora.error import ProvisionError
from resotoaurora.resources.base import AwsResource, tags_from_list
from resotoaurora.types import Json
from resotoaurora.utils import value_in_path

region = "us-east-1"


def client_error(code: str, message: str = "Test error") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "test")


class BotoCannedClient:
    """
    Stands in for a boto client: every action answers with the canned response or an empty dict.
    Responses are defined as "service:action" -> value, callable or exception.
    """

    def __init__(self, service: str, responses: Dict[str, Any], calls: List[Tuple[str, str, Json]]) -> None:
        self.service = service
        self.responses = responses
        self.calls = calls

    @staticmethod
    def can_paginate(_: str) -> bool:
        return False

    def get_waiter(self, waiter_name: str) -> Any:
        calls = self.calls
        service = self.service

        class Waiter:
            @staticmethod
            def wait(**kwargs: Any) -> None:
                calls.append((service, f"waiter:{waiter_name}", kwargs))

        return Waiter()

    def __getattr__(self, action_name: str) -> Callable[..., Any]:
        def call_action(*args: Any, **kwargs: Any) -> Any:
            assert not args, "No arguments allowed!"
            action = action_name.replace("_", "-")
            self.calls.append((self.service, action, kwargs))
            response = self.responses.get(f"{self.service}:{action}", {})
            if isinstance(response, Exception):
                raise response
            return response(**kwargs) if callable(response) else response

        return call_action


# use this factory in tests, to answer api calls from memory
class BotoCannedSession(Session):  # type: ignore
    def __init__(self, responses: Optional[Dict[str, Any]] = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.responses = responses or {}
        self.calls: List[Tuple[str, str, Json]] = []
        self.session_args: List[Json] = []

    def client(self, service_name: str, **kwargs: Any) -> Any:
        return BotoCannedClient(service_name, self.responses, self.calls)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        self.session_args.append(kwargs)
        return self


class BotoErrorClient:
    def __init__(self, exception: Exception):
        self.exception = exception

    @staticmethod
    def can_paginate(_: str) -> bool:
        return False

    def __getattr__(self, action_name: str) -> Callable[[], Any]:
        raise self.exception


# use this factory in tests, to check how errors are handled
class BotoErrorSession(Session):  # type: ignore
    def __init__(self, exception: Exception = Exception("Test exception"), **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.exception = exception

    def client(self, service_name: str, **kwargs: Any) -> Any:
        return BotoErrorClient(self.exception)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self


class FakeAws:
    """
    In memory version of the AWS APIs used by the resources.
    Implements the interface of AwsClient and records every call.
    """

    def __init__(
        self,
        vpc_id: str = "vpc-1",
        cidr_block: str = "10.0.0.0/16",
        subnet_ids: Tuple[str, ...] = ("subnet-a", "subnet-b"),
        zone_name: str = "internal.example.com",
    ) -> None:
        self.vpcs = {vpc_id: {"VpcId": vpc_id, "CidrBlock": cidr_block}}
        self.subnets = [{"SubnetId": s, "VpcId": vpc_id} for s in subnet_ids]
        self.zones = [
            {"Id": "/hostedzone/ZPUBLIC", "Name": zone_name + ".", "Config": {"PrivateZone": False}},
            {"Id": "/hostedzone/ZPRIVATE", "Name": zone_name + ".", "Config": {"PrivateZone": True}},
        ]
        self.security_groups: Dict[str, Json] = {}
        self.subnet_groups: Dict[str, Json] = {}
        self.parameter_groups: Dict[str, Dict[str, Json]] = {"cluster": {}, "db": {}}
        self.parameters: Dict[str, Dict[str, Json]] = {}
        self.clusters: Dict[str, Json] = {}
        self.instances: Dict[str, Json] = {}
        self.records: Dict[str, Json] = {}
        self.snapshots: Dict[str, Json] = {}
        self.calls: List[Tuple[str, str, Json]] = []
        # action -> exception raised when the action is called
        self.failures: Dict[str, Exception] = {}
        self.counter = 0
        self.lock = threading.RLock()

    # region AwsClient interface

    def __dispatch(self, service: str, action: str, kwargs: Json) -> Json:
        with self.lock:
            self.calls.append((service, action, kwargs))
            if action in self.failures:
                raise self.failures[action]
            # callers get a copy, like from a real api
            return deepcopy(getattr(self, action.replace("-", "_"))(**kwargs))  # type: ignore

    def call(self, aws_service: str, action: str, result_name: Optional[str] = None, **kwargs: Any) -> Any:
        result = self.__dispatch(aws_service, action, kwargs)
        return value_in_path(result, result_name) if result_name else result

    def get(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str],
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> Any:
        try:
            return self.call(aws_service, action, result_name, **kwargs)
        except ClientError as e:
            if e.response["Error"]["Code"] in (expected_errors or []):
                return None
            raise

    def list(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str],
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> List[Any]:
        res = self.get(aws_service, action, result_name, expected_errors, **kwargs)
        if res is None:
            return []
        return res if isinstance(res, list) else [res]

    def wait(self, aws_service: str, waiter_name: str, delay: int = 30, max_attempts: int = 120, **kwargs: Any) -> None:
        with self.lock:
            self.calls.append((aws_service, f"waiter:{waiter_name}", kwargs))
            if f"waiter:{waiter_name}" in self.failures:
                raise self.failures[f"waiter:{waiter_name}"]

    # endregion

    # region helper

    def actions(self, *prefixes: str) -> List[str]:
        return [a for _, a, _ in self.calls if not prefixes or a.startswith(prefixes)]

    def mutations(self) -> List[str]:
        read_only = ("describe-", "list-", "get-", "waiter:")
        return [a for _, a, _ in self.calls if not a.startswith(read_only)]

    def args_of(self, action: str) -> Json:
        for _, a, kwargs in reversed(self.calls):
            if a == action:
                return kwargs
        raise AssertionError(f"{action} was not called")

    def next_id(self, prefix: str) -> str:
        self.counter += 1
        return f"{prefix}-{self.counter:04d}"

    @staticmethod
    def arn(kind: str, name: str) -> str:
        return f"arn:aws:rds:{region}:123456789012:{kind}:{name}"

    # endregion

    # region ec2

    def describe_vpcs(self, VpcIds: List[str]) -> Json:  # noqa: N803
        missing = [v for v in VpcIds if v not in self.vpcs]
        if missing:
            raise client_error("InvalidVpcID.NotFound")
        return {"Vpcs": [self.vpcs[v] for v in VpcIds]}

    def describe_subnets(self, Filters: List[Json]) -> Json:  # noqa: N803
        vpc_ids = next(f["Values"] for f in Filters if f["Name"] == "vpc-id")
        return {"Subnets": [s for s in self.subnets if s["VpcId"] in vpc_ids]}

    def describe_security_groups(self, Filters: List[Json]) -> Json:  # noqa: N803
        values = {f["Name"]: f["Values"] for f in Filters}
        return {
            "SecurityGroups": [
                g
                for g in self.security_groups.values()
                if g["GroupName"] in values.get("group-name", [g["GroupName"]])
                and g["VpcId"] in values.get("vpc-id", [g["VpcId"]])
            ]
        }

    def create_security_group(self, GroupName: str, VpcId: str, **kwargs: Any) -> Json:  # noqa: N803
        group_id = self.next_id("sg")
        self.security_groups[group_id] = {
            "GroupId": group_id,
            "GroupName": GroupName,
            "VpcId": VpcId,
            "IpPermissions": [],
            "Tags": kwargs["TagSpecifications"][0]["Tags"],
        }
        return {"GroupId": group_id}

    def authorize_security_group_ingress(self, GroupId: str, IpPermissions: List[Json]) -> Json:  # noqa: N803
        self.security_groups[GroupId]["IpPermissions"].extend(IpPermissions)
        return {"Return": True}

    def revoke_security_group_ingress(self, GroupId: str, IpPermissions: List[Json]) -> Json:  # noqa: N803
        group = self.security_groups[GroupId]

        def key(p: Json) -> Tuple[Any, ...]:
            return p["IpProtocol"], p.get("FromPort"), p.get("ToPort"), tuple(r["CidrIp"] for r in p["IpRanges"])

        revoked = {key(p) for p in IpPermissions}
        group["IpPermissions"] = [p for p in group["IpPermissions"] if key(p) not in revoked]
        return {"Return": True}

    def delete_security_group(self, GroupId: str) -> Json:  # noqa: N803
        for cluster in self.clusters.values():
            if GroupId in [g["VpcSecurityGroupId"] for g in cluster["VpcSecurityGroups"]]:
                raise client_error("DependencyViolation", f"{GroupId} is in use")
        del self.security_groups[GroupId]
        return {}

    # endregion

    # region rds subnet groups

    def describe_db_subnet_groups(self, DBSubnetGroupName: str) -> Json:  # noqa: N803
        if DBSubnetGroupName not in self.subnet_groups:
            raise client_error("DBSubnetGroupNotFoundFault")
        return {"DBSubnetGroups": [self.subnet_groups[DBSubnetGroupName]]}

    def create_db_subnet_group(self, DBSubnetGroupName: str, SubnetIds: List[str], **kwargs: Any) -> Json:  # noqa: N803
        if DBSubnetGroupName in self.subnet_groups:
            raise client_error("DBSubnetGroupAlreadyExists")
        group = {
            "DBSubnetGroupName": DBSubnetGroupName,
            "DBSubnetGroupArn": self.arn("subgrp", DBSubnetGroupName),
            "Subnets": [{"SubnetIdentifier": s} for s in SubnetIds],
        }
        self.subnet_groups[DBSubnetGroupName] = group
        return {"DBSubnetGroup": group}

    def modify_db_subnet_group(self, DBSubnetGroupName: str, SubnetIds: List[str]) -> Json:  # noqa: N803
        group = self.subnet_groups[DBSubnetGroupName]
        group["Subnets"] = [{"SubnetIdentifier": s} for s in SubnetIds]
        return {"DBSubnetGroup": group}

    def delete_db_subnet_group(self, DBSubnetGroupName: str) -> Json:  # noqa: N803
        if any(c["DBSubnetGroup"] == DBSubnetGroupName for c in self.clusters.values()):
            raise client_error("InvalidDBSubnetGroupStateFault", f"{DBSubnetGroupName} is in use")
        del self.subnet_groups[DBSubnetGroupName]
        return {}

    # endregion

    # region rds parameter groups

    def __describe_pg(self, flavour: str, name: str, key: str) -> Json:
        if name not in self.parameter_groups[flavour]:
            raise client_error("DBParameterGroupNotFound")
        return {key: [self.parameter_groups[flavour][name]]}

    def __create_pg(self, flavour: str, name_key: str, name: str, family: str, key: str) -> Json:
        if name in self.parameter_groups[flavour]:
            raise client_error("DBParameterGroupAlreadyExists")
        group = {name_key: name, "DBParameterGroupFamily": family, f"{key}Arn": self.arn("pg", name)}
        self.parameter_groups[flavour][name] = group
        self.parameters[name] = {}
        return {key: group}

    def __modify_pg(self, name: str, parameters: List[Json]) -> Json:
        for p in parameters:
            self.parameters[name][p["ParameterName"]] = p
        for instance in self.instances.values():
            for group in instance["DBParameterGroups"]:
                if group["DBParameterGroupName"] == name:
                    group["ParameterApplyStatus"] = "pending-reboot"
        return {}

    def __delete_pg(self, flavour: str, name: str) -> Json:
        if name not in self.parameter_groups[flavour]:
            raise client_error("DBParameterGroupNotFound")
        used_by_cluster = any(c["DBClusterParameterGroup"] == name for c in self.clusters.values())
        used_by_instance = any(
            g["DBParameterGroupName"] == name for i in self.instances.values() for g in i["DBParameterGroups"]
        )
        if used_by_cluster or used_by_instance:
            raise client_error("InvalidDBParameterGroupState", f"{name} is in use")
        del self.parameter_groups[flavour][name]
        del self.parameters[name]
        return {}

    def describe_db_cluster_parameter_groups(self, DBClusterParameterGroupName: str) -> Json:  # noqa: N803
        return self.__describe_pg("cluster", DBClusterParameterGroupName, "DBClusterParameterGroups")

    def create_db_cluster_parameter_group(self, **kwargs: Any) -> Json:
        name = kwargs["DBClusterParameterGroupName"]
        family = kwargs["DBParameterGroupFamily"]
        return self.__create_pg("cluster", "DBClusterParameterGroupName", name, family, "DBClusterParameterGroup")

    def modify_db_cluster_parameter_group(self, **kwargs: Any) -> Json:
        return self.__modify_pg(kwargs["DBClusterParameterGroupName"], kwargs["Parameters"])

    def describe_db_cluster_parameters(self, DBClusterParameterGroupName: str, Source: str) -> Json:  # noqa: N803
        return {"Parameters": list(self.parameters[DBClusterParameterGroupName].values())}

    def delete_db_cluster_parameter_group(self, DBClusterParameterGroupName: str) -> Json:  # noqa: N803
        return self.__delete_pg("cluster", DBClusterParameterGroupName)

    def describe_db_parameter_groups(self, DBParameterGroupName: str) -> Json:  # noqa: N803
        return self.__describe_pg("db", DBParameterGroupName, "DBParameterGroups")

    def create_db_parameter_group(self, **kwargs: Any) -> Json:
        name = kwargs["DBParameterGroupName"]
        family = kwargs["DBParameterGroupFamily"]
        return self.__create_pg("db", "DBParameterGroupName", name, family, "DBParameterGroup")

    def modify_db_parameter_group(self, DBParameterGroupName: str, Parameters: List[Json]) -> Json:  # noqa: N803
        return self.__modify_pg(DBParameterGroupName, Parameters)

    def describe_db_parameters(self, DBParameterGroupName: str, Source: str) -> Json:  # noqa: N803
        return {"Parameters": list(self.parameters[DBParameterGroupName].values())}

    def delete_db_parameter_group(self, DBParameterGroupName: str) -> Json:  # noqa: N803
        return self.__delete_pg("db", DBParameterGroupName)

    # endregion

    # region rds clusters

    def __with_members(self, cluster: Json) -> Json:
        cluster_id = cluster["DBClusterIdentifier"]
        names = sorted(n for n, i in self.instances.items() if i["DBClusterIdentifier"] == cluster_id)
        members = [{"DBInstanceIdentifier": n, "IsClusterWriter": num == 0} for num, n in enumerate(names)]
        return {**cluster, "DBClusterMembers": members}

    def describe_db_clusters(self, DBClusterIdentifier: Optional[str] = None) -> Json:  # noqa: N803
        if DBClusterIdentifier is None:
            return {"DBClusters": [self.__with_members(c) for c in self.clusters.values()]}
        if DBClusterIdentifier not in self.clusters:
            raise client_error("DBClusterNotFoundFault")
        return {"DBClusters": [self.__with_members(self.clusters[DBClusterIdentifier])]}

    def create_db_cluster(self, DBClusterIdentifier: str, **kwargs: Any) -> Json:  # noqa: N803
        if DBClusterIdentifier in self.clusters:
            raise client_error("DBClusterAlreadyExistsFault")
        cluster = {
            "DBClusterIdentifier": DBClusterIdentifier,
            "DBClusterArn": self.arn("cluster", DBClusterIdentifier),
            "Engine": kwargs["Engine"],
            "EngineVersion": kwargs["EngineVersion"],
            "DatabaseName": kwargs.get("DatabaseName"),
            "MasterUsername": kwargs.get("MasterUsername", "root"),
            "DBClusterParameterGroup": kwargs["DBClusterParameterGroupName"],
            "DBSubnetGroup": kwargs["DBSubnetGroupName"],
            "VpcSecurityGroups": [{"VpcSecurityGroupId": g, "Status": "active"} for g in kwargs["VpcSecurityGroupIds"]],
            "DeletionProtection": kwargs["DeletionProtection"],
            "Port": kwargs["Port"],
            "Endpoint": f"{DBClusterIdentifier}.cluster-abc.{region}.rds.amazonaws.com",
            "ReaderEndpoint": f"{DBClusterIdentifier}.cluster-ro-abc.{region}.rds.amazonaws.com",
            "Status": "available",
            "TagList": list(kwargs.get("Tags") or []),
        }
        self.clusters[DBClusterIdentifier] = cluster
        return {"DBCluster": cluster}

    def restore_db_cluster_from_snapshot(self, SnapshotIdentifier: str, **kwargs: Any) -> Json:  # noqa: N803
        result = self.create_db_cluster(**kwargs)
        result["DBCluster"]["RestoredFrom"] = SnapshotIdentifier
        return result

    def modify_db_cluster(self, DBClusterIdentifier: str, **kwargs: Any) -> Json:  # noqa: N803
        cluster = self.clusters[DBClusterIdentifier]
        for key in ["EngineVersion", "DeletionProtection", "Port"]:
            if key in kwargs:
                cluster[key] = kwargs[key]
        if "DBClusterParameterGroupName" in kwargs:
            cluster["DBClusterParameterGroup"] = kwargs["DBClusterParameterGroupName"]
        if "VpcSecurityGroupIds" in kwargs:
            cluster["VpcSecurityGroups"] = [{"VpcSecurityGroupId": g} for g in kwargs["VpcSecurityGroupIds"]]
        return {"DBCluster": cluster}

    def delete_db_cluster(self, DBClusterIdentifier: str, **kwargs: Any) -> Json:  # noqa: N803
        cluster = self.clusters.get(DBClusterIdentifier)
        if cluster is None:
            raise client_error("DBClusterNotFoundFault")
        if cluster["DeletionProtection"]:
            raise client_error("InvalidParameterCombination", "Cannot delete protected Cluster")
        if any(i["DBClusterIdentifier"] == DBClusterIdentifier for i in self.instances.values()):
            raise client_error("InvalidDBClusterStateFault", "Cluster still has instances")
        if not kwargs.get("SkipFinalSnapshot"):
            snapshot_id = kwargs["FinalDBSnapshotIdentifier"]
            if snapshot_id in self.snapshots:
                raise client_error("DBClusterSnapshotAlreadyExistsFault")
            self.snapshots[snapshot_id] = {"DBClusterSnapshotIdentifier": snapshot_id, "Cluster": DBClusterIdentifier}
        del self.clusters[DBClusterIdentifier]
        return {"DBCluster": cluster}

    def add_tags_to_resource(self, ResourceName: str, Tags: List[Json]) -> Json:  # noqa: N803
        cluster = next(c for c in self.clusters.values() if c["DBClusterArn"] == ResourceName)
        updated = {**tags_from_list(cluster["TagList"]), **tags_from_list(Tags)}
        cluster["TagList"] = [{"Key": k, "Value": v} for k, v in updated.items()]
        return {}

    # endregion

    # region rds instances

    def describe_db_instances(self, DBInstanceIdentifier: Optional[str] = None) -> Json:  # noqa: N803
        if DBInstanceIdentifier is None:
            return {"DBInstances": list(self.instances.values())}
        if DBInstanceIdentifier not in self.instances:
            raise client_error("DBInstanceNotFound")
        return {"DBInstances": [self.instances[DBInstanceIdentifier]]}

    def create_db_instance(self, DBInstanceIdentifier: str, **kwargs: Any) -> Json:  # noqa: N803
        if kwargs["DBClusterIdentifier"] not in self.clusters:
            raise client_error("DBClusterNotFoundFault")
        if kwargs["DBParameterGroupName"] not in self.parameter_groups["db"]:
            raise client_error("DBParameterGroupNotFound")
        instance = {
            "DBInstanceIdentifier": DBInstanceIdentifier,
            "DBInstanceArn": self.arn("db", DBInstanceIdentifier),
            "DBClusterIdentifier": kwargs["DBClusterIdentifier"],
            "DBInstanceClass": kwargs["DBInstanceClass"],
            "Engine": kwargs["Engine"],
            "PerformanceInsightsEnabled": kwargs["EnablePerformanceInsights"],
            "DBParameterGroups": [
                {"DBParameterGroupName": kwargs["DBParameterGroupName"], "ParameterApplyStatus": "in-sync"}
            ],
            "Endpoint": {"Address": f"{DBInstanceIdentifier}.abc.{region}.rds.amazonaws.com", "Port": 3306},
        }
        self.instances[DBInstanceIdentifier] = instance
        return {"DBInstance": instance}

    def modify_db_instance(self, DBInstanceIdentifier: str, **kwargs: Any) -> Json:  # noqa: N803
        instance = self.instances[DBInstanceIdentifier]
        if "DBInstanceClass" in kwargs:
            instance["DBInstanceClass"] = kwargs["DBInstanceClass"]
        if "EnablePerformanceInsights" in kwargs:
            instance["PerformanceInsightsEnabled"] = kwargs["EnablePerformanceInsights"]
        if "DBParameterGroupName" in kwargs:
            instance["DBParameterGroups"] = [
                {"DBParameterGroupName": kwargs["DBParameterGroupName"], "ParameterApplyStatus": "pending-reboot"}
            ]
        return {"DBInstance": instance}

    def reboot_db_instance(self, DBInstanceIdentifier: str) -> Json:  # noqa: N803
        instance = self.instances[DBInstanceIdentifier]
        for group in instance["DBParameterGroups"]:
            group["ParameterApplyStatus"] = "in-sync"
        return {"DBInstance": instance}

    def delete_db_instance(self, DBInstanceIdentifier: str, **kwargs: Any) -> Json:  # noqa: N803
        if DBInstanceIdentifier not in self.instances:
            raise client_error("DBInstanceNotFound")
        return {"DBInstance": self.instances.pop(DBInstanceIdentifier)}

    # endregion

    # region route53

    def list_hosted_zones_by_name(self, DNSName: str) -> Json:  # noqa: N803
        return {"HostedZones": sorted((z for z in self.zones if z["Name"] >= DNSName), key=lambda z: z["Name"])}

    def get_hosted_zone(self, Id: str) -> Json:  # noqa: N803
        for zone in self.zones:
            if zone["Id"].endswith(Id):
                return {"HostedZone": zone}
        raise client_error("NoSuchHostedZone")

    def list_resource_record_sets(self, HostedZoneId: str, StartRecordName: str, **kwargs: Any) -> Json:  # noqa: N803
        max_items = kwargs.get("PaginationConfig", {}).get("MaxItems", 100)
        names = sorted(name for name in self.records if name >= StartRecordName)
        return {"ResourceRecordSets": [self.records[name] for name in names[:max_items]]}

    def change_resource_record_sets(self, HostedZoneId: str, ChangeBatch: Json) -> Json:  # noqa: N803
        for change in ChangeBatch["Changes"]:
            record = change["ResourceRecordSet"]
            if change["Action"] == "UPSERT":
                self.records[record["Name"]] = dict(record)
            elif change["Action"] == "DELETE":
                if self.records.get(record["Name"]) != record:
                    raise client_error("InvalidChangeBatch", f"Record {record['Name']} does not match")
                del self.records[record["Name"]]
        return {"ChangeInfo": {"Id": self.next_id("/change/C"), "Status": "PENDING"}}

    # endregion


@define(eq=False, slots=False)
class StubResource(AwsResource):
    """
    Resource without any api: creates and deletes are recorded in the shared journal.
    """

    kind: ClassVar[str] = "stub"
    journal: List[str] = field(factory=list, kw_only=True, repr=False)
    exists: bool = field(default=False, kw_only=True)
    fail_on: Optional[str] = field(default=None, kw_only=True)

    def __check(self, operation: str) -> None:
        if self.fail_on == operation:
            raise ProvisionError(f"{operation} of {self.name} failed")

    def read(self, client: Any) -> Optional[Json]:
        self.__check("read")
        return {"Name": self.name} if self.exists else None

    def create(self, client: Any) -> Json:
        self.__check("create")
        self.journal.append(f"create {self.name}")
        self.exists = True
        return {"Name": self.name}

    def delete(self, client: Any, current: Json) -> None:
        self.__check("delete")
        self.journal.append(f"delete {self.name}")
        self.exists = False

    def refresh(self, current: Json) -> None:
        self.id = current["Name"]
