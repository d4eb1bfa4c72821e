from typing import ClassVar, List, Optional, Type

from attrs import define, field

from resotoaurora.aws_client import AwsClient
from resotoaurora.error import ProvisionError
from resotoaurora.naming import fqdn
from resotoaurora.resources.base import AwsApiSpec, AwsDataResource, AwsResource, Change, ChangeAction
from resotoaurora.resources.rds import AwsRdsCluster
from resotoaurora.types import Json

service_name = "route53"

DEFAULT_TTL = 5


def zone_id_of(hosted_zone_id: str) -> str:
    # the api returns ids like /hostedzone/Z0123456789
    return hosted_zone_id.rsplit("/", 1)[-1]


@define(eq=False, slots=False)
class AwsRoute53Zone(AwsDataResource):
    """
    The private hosted zone of the internal root domain.
    Looked up by name, unless the zone id is configured.
    """

    kind: ClassVar[str] = "aws_route53_zone"
    read_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "list-hosted-zones-by-name", "route53:ListHostedZonesByName"),
        AwsApiSpec(service_name, "get-hosted-zone"),
    ]
    zone_id: Optional[str] = field(default=None, kw_only=True)
    domain: Optional[str] = field(default=None, kw_only=True)
    private_zone: bool = field(default=True, kw_only=True)

    def read(self, client: AwsClient) -> Optional[Json]:
        if self.zone_id:
            return client.get(
                service_name,
                "get-hosted-zone",
                "HostedZone",
                expected_errors=["NoSuchHostedZone"],
                Id=self.zone_id,
            )
        dns_name = self.name.rstrip(".") + "."
        zones = client.list(service_name, "list-hosted-zones-by-name", "HostedZones", DNSName=dns_name)
        matching = [
            zone
            for zone in zones
            if zone.get("Name") == dns_name
            and bool((zone.get("Config") or {}).get("PrivateZone")) == self.private_zone
        ]
        if len(matching) > 1:
            ids = ", ".join(zone_id_of(zone["Id"]) for zone in matching)
            raise ProvisionError(f"Multiple hosted zones found for {dns_name}: {ids}. Define internal_zone_id.")
        return matching[0] if matching else None

    def refresh(self, current: Json) -> None:
        self.id = zone_id_of(current["Id"])
        self.domain = (current.get("Name") or self.name).rstrip(".")

    def outputs(self) -> Json:
        return {"id": self.id, "domain": self.domain, "private_zone": self.private_zone}


@define(eq=False, slots=False)
class AwsRoute53Record(AwsResource):
    """
    CNAME record that points to the writer or the reader endpoint of a cluster.
    """

    kind: ClassVar[str] = "aws_route53_record"
    read_apis: ClassVar[List[AwsApiSpec]] = [AwsApiSpec(service_name, "list-resource-record-sets")]
    mutator_apis: ClassVar[List[AwsApiSpec]] = [
        AwsApiSpec(service_name, "change-resource-record-sets"),
        AwsApiSpec(service_name, "get-change"),
    ]
    zone: AwsRoute53Zone = field(kw_only=True)
    cluster: AwsRdsCluster = field(kw_only=True)
    reader: bool = field(default=False, kw_only=True)
    ttl: int = field(default=DEFAULT_TTL, kw_only=True)
    record_type: str = field(default="CNAME", kw_only=True)
    # computed
    value: Optional[str] = field(default=None, kw_only=True)

    @property
    def fqdn(self) -> str:
        return fqdn(self.name, self.zone.require("domain"))

    def desired_value(self) -> str:
        return self.cluster.require("reader_endpoint" if self.reader else "endpoint")  # type: ignore

    @staticmethod
    def value_of(current: Json) -> Optional[str]:
        records = current.get("ResourceRecords") or []
        return records[0].get("Value") if records else None

    def read(self, client: AwsClient) -> Optional[Json]:
        name = self.fqdn
        record_sets = client.list(
            service_name,
            "list-resource-record-sets",
            "ResourceRecordSets",
            HostedZoneId=self.zone.require("id"),
            StartRecordName=name,
            StartRecordType=self.record_type,
            PaginationConfig={"MaxItems": 1},
        )
        for record_set in record_sets:
            if record_set.get("Name") == name and record_set.get("Type") == self.record_type:
                return record_set  # type: ignore
        return None

    def diff(self, current: Optional[Json]) -> Change:
        if current is None:
            return Change.create()
        reasons = []
        desired = self.desired_value()
        if self.value_of(current) != desired:
            reasons.append(f"value {self.value_of(current)} -> {desired}")
        if current.get("TTL") != self.ttl:
            reasons.append(f"ttl {current.get('TTL')} -> {self.ttl}")
        return Change(ChangeAction.update, reasons) if reasons else Change.noop()

    def record_set(self) -> Json:
        return {
            "Name": self.fqdn,
            "Type": self.record_type,
            "TTL": self.ttl,
            "ResourceRecords": [{"Value": self.desired_value()}],
        }

    def change(self, client: AwsClient, action: str, record_set: Json) -> None:
        result = client.call(
            service_name,
            "change-resource-record-sets",
            "ChangeInfo",
            HostedZoneId=self.zone.require("id"),
            ChangeBatch={
                "Comment": f"{action} {self.rid}",
                "Changes": [{"Action": action, "ResourceRecordSet": record_set}],
            },
        )
        change_id = (result or {}).get("Id")  # type: ignore
        if change_id:
            client.wait(service_name, "resource_record_sets_changed", delay=10, max_attempts=60, Id=change_id)

    def create(self, client: AwsClient) -> Json:
        record_set = self.record_set()
        self.change(client, "UPSERT", record_set)
        return record_set

    def update(self, client: AwsClient, current: Json, change: Change) -> Json:
        return self.create(client)

    def delete(self, client: AwsClient, current: Json) -> None:
        # a delete has to match the existing record exactly
        self.change(client, "DELETE", current)

    def refresh(self, current: Json) -> None:
        self.id = current.get("Name", self.fqdn).rstrip(".")
        self.value = self.value_of(current)

    def outputs(self) -> Json:
        return {
            "name": self.name,
            "fqdn": self.id,
            "type": self.record_type,
            "ttl": self.ttl,
            "value": self.value,
            "zone_id": self.zone.id,
        }


resources: List[Type[AwsResource]] = [AwsRoute53Zone, AwsRoute53Record]
