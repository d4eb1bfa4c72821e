from typing import ClassVar, Dict, List, Optional, Set, Tuple, Type

from attrs import define, field

from resotoaurora.aws_client import AwsClient
from resotoaurora.resources.base import AwsApiSpec, AwsDataResource, AwsResource, Change, ChangeAction, tag_list
from resotoaurora.types import Json

service_name = "ec2"

# protocol, from port, to port, cidr
IngressRule = Tuple[str, int, int, str]


@define(eq=False, slots=False)
class AwsVpc(AwsDataResource):
    """
    The network context: owned upstream, only looked up here.
    Values defined in the configuration take precedence over the looked up ones.
    """

    kind: ClassVar[str] = "aws_vpc"
    read_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "describe-vpcs"),
        AwsApiSpec(service_name, "describe-subnets"),
    ]
    cidr_block: Optional[str] = field(default=None, kw_only=True)
    subnet_ids: Optional[List[str]] = field(default=None, kw_only=True)

    def read(self, client: AwsClient) -> Optional[Json]:
        vpc_id = self.name
        cidr_block = self.cidr_block
        if cidr_block is None:
            vpcs = client.list(
                service_name, "describe-vpcs", "Vpcs", expected_errors=["InvalidVpcID.NotFound"], VpcIds=[vpc_id]
            )
            if not vpcs:
                return None
            cidr_block = vpcs[0].get("CidrBlock")
        subnet_ids = self.subnet_ids
        if subnet_ids is None:
            subnets = client.list(
                service_name, "describe-subnets", "Subnets", Filters=[{"Name": "vpc-id", "Values": [vpc_id]}]
            )
            subnet_ids = sorted(s["SubnetId"] for s in subnets)
        return {"VpcId": vpc_id, "CidrBlock": cidr_block, "SubnetIds": subnet_ids}

    def refresh(self, current: Json) -> None:
        self.id = current["VpcId"]
        self.cidr_block = current.get("CidrBlock")
        self.subnet_ids = list(current.get("SubnetIds") or [])

    def outputs(self) -> Json:
        return {"id": self.id, "cidr_block": self.cidr_block, "subnet_ids": self.subnet_ids}


@define(eq=False, slots=False)
class AwsEc2SecurityGroup(AwsResource):
    """
    Allows database traffic from within the VPC and nothing else.
    """

    kind: ClassVar[str] = "aws_ec2_security_group"
    read_apis: ClassVar[List[AwsApiSpec]] = [AwsApiSpec(service_name, "describe-security-groups")]
    mutator_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "create-security-group"),
        AwsApiSpec(service_name, "authorize-security-group-ingress"),
        AwsApiSpec(service_name, "revoke-security-group-ingress"),
        AwsApiSpec(service_name, "delete-security-group"),
        AwsApiSpec(service_name, "create-tags"),
    ]
    vpc: AwsVpc = field(kw_only=True)
    port: int = field(default=3306, kw_only=True)
    tags: Dict[str, str] = field(factory=dict, kw_only=True)
    vpc_id: Optional[str] = field(default=None, kw_only=True)

    def desired_rules(self) -> Set[IngressRule]:
        cidr = self.vpc.require("cidr_block")
        return {("tcp", self.port, self.port, cidr)}

    @staticmethod
    def current_rules(current: Json) -> Set[IngressRule]:
        rules = set()
        for permission in current.get("IpPermissions") or []:
            protocol = permission.get("IpProtocol")
            from_port = permission.get("FromPort", -1)
            to_port = permission.get("ToPort", -1)
            for ip_range in permission.get("IpRanges") or []:
                rules.add((protocol, from_port, to_port, ip_range.get("CidrIp")))
        return rules

    @staticmethod
    def ip_permissions(rules: Set[IngressRule]) -> List[Json]:
        return [
            {
                "IpProtocol": protocol,
                "FromPort": from_port,
                "ToPort": to_port,
                "IpRanges": [{"CidrIp": cidr, "Description": "MySQL from within the VPC"}],
            }
            for protocol, from_port, to_port, cidr in sorted(rules)
        ]

    def read(self, client: AwsClient) -> Optional[Json]:
        groups = client.list(
            service_name,
            "describe-security-groups",
            "SecurityGroups",
            Filters=[
                {"Name": "group-name", "Values": [self.name]},
                {"Name": "vpc-id", "Values": [self.vpc.require("id")]},
            ],
        )
        return groups[0] if groups else None

    def diff(self, current: Optional[Json]) -> Change:
        if current is None:
            return Change.create()
        desired = self.desired_rules()
        existing = self.current_rules(current)
        reasons = []
        if desired - existing:
            reasons.append("ingress rule missing")
        if existing - desired:
            reasons.append("unexpected ingress rule")
        return Change(ChangeAction.update, reasons) if reasons else Change.noop()

    def create(self, client: AwsClient) -> Json:
        vpc_id = self.vpc.require("id")
        result = client.call(
            service_name,
            "create-security-group",
            GroupName=self.name,
            Description=f"MySQL access for {self.name}",
            VpcId=vpc_id,
            TagSpecifications=[{"ResourceType": "security-group", "Tags": tag_list({"Name": self.name, **self.tags})}],
        )
        group_id = result["GroupId"]  # type: ignore
        permissions = self.ip_permissions(self.desired_rules())
        client.call(service_name, "authorize-security-group-ingress", GroupId=group_id, IpPermissions=permissions)
        return {"GroupId": group_id, "GroupName": self.name, "VpcId": vpc_id, "IpPermissions": permissions}

    def update(self, client: AwsClient, current: Json, change: Change) -> Json:
        group_id = current["GroupId"]
        desired = self.desired_rules()
        existing = self.current_rules(current)
        if missing := desired - existing:
            client.call(
                service_name,
                "authorize-security-group-ingress",
                GroupId=group_id,
                IpPermissions=self.ip_permissions(missing),
            )
        if unexpected := existing - desired:
            client.call(
                service_name,
                "revoke-security-group-ingress",
                GroupId=group_id,
                IpPermissions=self.ip_permissions(unexpected),
            )
        return {**current, "IpPermissions": self.ip_permissions(desired)}

    def delete(self, client: AwsClient, current: Json) -> None:
        client.call(service_name, "delete-security-group", GroupId=current["GroupId"])

    def refresh(self, current: Json) -> None:
        self.id = current["GroupId"]
        self.vpc_id = current.get("VpcId")

    def outputs(self) -> Json:
        return {"name": self.name, "id": self.id, "vpc_id": self.vpc_id, "port": self.port}


resources: List[Type[AwsResource]] = [AwsVpc, AwsEc2SecurityGroup]
