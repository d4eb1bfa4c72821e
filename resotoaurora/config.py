import os
from typing import ClassVar, Dict, List, Optional

import yaml
from attrs import define, field, fields_dict
from cattrs.errors import BaseValidationError

from resotoaurora.error import ConfigurationError
from resotoaurora.json import from_json
from resotoaurora.logger import log
from resotoaurora.types import Json

DEFAULT_ENGINE_VERSION = "5.7.mysql_aurora.2.11.2"
DEFAULT_STATE_FILE = "resotoaurora.state.json"

# Options that would allow losing data without a final snapshot are rejected.
forbidden_cluster_options = {"skip_final_snapshot"}


@define
class AwsAuthentication:
    kind: ClassVar[str] = "aws"
    region: Optional[str] = field(default=None, metadata={"description": "AWS region to provision into"})
    access_key: Optional[str] = field(
        default=None,
        metadata={"description": "AWS Access Key ID (null to load from env - recommended)"},
    )
    secret_key: Optional[str] = field(
        default=None,
        metadata={"description": "AWS Secret Access Key (null to load from env - recommended)"},
    )


@define
class Authentication:
    kind: ClassVar[str] = "authentication"
    aws: AwsAuthentication = field(factory=AwsAuthentication, metadata={"description": "AWS credentials"})


@define
class NetworkConfig:
    kind: ClassVar[str] = "network"
    vpc_id: Optional[str] = field(default=None, metadata={"description": "VPC that hosts the database clusters"})
    cidr_block: Optional[str] = field(
        default=None,
        metadata={"description": "CIDR block allowed to connect (null to look it up from the VPC)"},
    )
    subnet_ids: Optional[List[str]] = field(
        default=None,
        metadata={"description": "Subnets of the DB subnet group (null to use all subnets of the VPC)"},
    )


@define
class ClusterConfig:
    kind: ClassVar[str] = "cluster"
    master_password: Optional[str] = field(default=None, metadata={"description": "Master password (required)"})
    engine_version: str = field(
        default=DEFAULT_ENGINE_VERSION,
        metadata={"description": "Aurora MySQL engine version, e.g. 5.7.mysql_aurora.2.11.2"},
    )
    master_username: str = field(default="root", metadata={"description": "Master user name"})
    instance_count: int = field(default=1, metadata={"description": "Number of instances in the cluster"})
    instance_type: str = field(default="db.t3.medium", metadata={"description": "Instance class of all instances"})
    database_name: Optional[str] = field(default=None, metadata={"description": "Name of the initial database"})
    deletion_protection: bool = field(default=True, metadata={"description": "Protect the cluster from deletion"})
    apply_immediately: bool = field(
        default=True,
        metadata={"description": "Apply modifications immediately instead of in the next maintenance window"},
    )
    snapshot_identifier: Optional[str] = field(
        default=None,
        metadata={"description": "Restore the cluster from this snapshot when it is created"},
    )
    db_subnet_group_name: Optional[str] = field(
        default=None,
        metadata={"description": "Use this existing subnet group instead of the shared one"},
    )


@define
class ModuleConfig:
    kind: ClassVar[str] = "resotoaurora"
    name: Optional[str] = field(default=None, metadata={"description": "Module name, part of all resource names"})
    authentication: Authentication = field(factory=Authentication, metadata={"description": "Credentials"})
    internal_root_domain: Optional[str] = field(
        default=None,
        metadata={"description": "Domain of the private hosted zone that receives the cluster records"},
    )
    internal_subdomain: Optional[str] = field(
        default=None,
        metadata={"description": "Subdomain below the root domain, e.g. prod"},
    )
    internal_zone_id: Optional[str] = field(
        default=None,
        metadata={"description": "Hosted zone id (null to look it up by internal_root_domain)"},
    )
    clusters: Dict[str, ClusterConfig] = field(factory=dict, metadata={"description": "Clusters by name"})
    network: NetworkConfig = field(factory=NetworkConfig, metadata={"description": "Network context"})
    port: int = field(default=3306, metadata={"description": "Database port opened in the security group"})
    security_group_name: Optional[str] = field(
        default=None,
        metadata={"description": "Override the name of the shared security group"},
    )
    subnet_group_name: Optional[str] = field(
        default=None,
        metadata={"description": "Override the name of the shared DB subnet group"},
    )
    reboot_pending_instances: bool = field(
        default=False,
        metadata={"description": "Reboot instances with parameters pending a reboot"},
    )
    state_file: str = field(default=DEFAULT_STATE_FILE, metadata={"description": "Where to keep generated ids"})
    post_apply: List[str] = field(
        factory=list,
        metadata={"description": "Shell commands to run after a successful apply"},
    )
    tags: Dict[str, str] = field(factory=dict, metadata={"description": "Tags added to every created resource"})

    @staticmethod
    def from_json(json: Json) -> "ModuleConfig":
        clusters = json.get("clusters") or {}
        if not isinstance(clusters, dict):
            raise ConfigurationError("Clusters have to be defined as mapping of name to cluster", "clusters")
        json["clusters"] = clusters
        for cluster_name, cluster in clusters.items():
            if cluster is None:
                # a cluster without any option in yaml
                clusters[cluster_name] = {}
            elif isinstance(cluster, dict):
                for option in forbidden_cluster_options.intersection(cluster.keys()):
                    raise ConfigurationError(
                        "Option is not supported: destroying a cluster always creates a final snapshot",
                        f"clusters.{cluster_name}.{option}",
                    )
        valid_fields = fields_dict(ModuleConfig).keys()
        for field_name in list(json.keys()):
            if field_name not in valid_fields:
                log.warning(f"Ignoring unknown configuration field {field_name}")
                del json[field_name]
        try:
            return from_json(json, ModuleConfig)
        except (BaseValidationError, ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def validate(self) -> "ModuleConfig":
        if not self.name:
            raise ConfigurationError("Required field is missing", "name")
        if not self.authentication.aws.region:
            raise ConfigurationError("Required field is missing", "authentication.aws.region")
        if self.clusters:
            if not self.internal_root_domain and not self.internal_zone_id:
                raise ConfigurationError("Required field is missing", "internal_root_domain")
            if not self.internal_subdomain:
                raise ConfigurationError("Required field is missing", "internal_subdomain")
            if not self.network.vpc_id:
                raise ConfigurationError("Required field is missing", "network.vpc_id")
        for cluster_name, cluster in self.clusters.items():
            path = f"clusters.{cluster_name}"
            if not cluster_name or cluster_name != cluster_name.lower():
                raise ConfigurationError("Cluster names have to be lowercase and non empty", path)
            if not cluster.master_password:
                raise ConfigurationError("Required field is missing", f"{path}.master_password")
            if cluster.instance_count < 0:
                raise ConfigurationError("Instance count can not be negative", f"{path}.instance_count")
            if not cluster.engine_version:
                raise ConfigurationError("Required field is missing", f"{path}.engine_version")
        return self


def load_config(path: str) -> ModuleConfig:
    if not os.path.isfile(path):
        raise ConfigurationError(f"Could not find configuration file {path}")
    with open(path, "r") as f:
        try:
            js = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Can not parse configuration file {path}: {e}") from e
    if not isinstance(js, dict):
        raise ConfigurationError(f"Configuration file {path} does not contain a mapping")
    log.debug(f"Loaded configuration from {path}")
    return ModuleConfig.from_json(js).validate()
