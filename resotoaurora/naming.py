"""
Physical names of all resources managed by this module.

All names start with ``p-v1-{module name}-``. Existing deployments rely on these names, so they must not change.
"""
import re
from typing import Optional, Dict, List

NAME_PREFIX = "p-v1"
ENGINE = "aurora-mysql"
MAX_SNAPSHOT_IDENTIFIER_LENGTH = 255

# engine major version -> parameter group family
engine_families: Dict[str, str] = {
    "5.6": "aurora5.6",
    "5.7": "aurora-mysql5.7",
    "8.0": "aurora-mysql8.0",
}

# MySQL 5.6 compatible clusters use the original aurora engine
legacy_engines: Dict[str, str] = {"5.6": "aurora"}

# performance insights is not supported on these instance classes
burstable_small_instance_type = re.compile(r"^db\.t[23]\.")


def security_group_name(module_name: str, override: Optional[str] = None) -> str:
    return override or f"{NAME_PREFIX}-{module_name}-mysql-sg"


def subnet_group_name(module_name: str, override: Optional[str] = None) -> str:
    return override or f"{NAME_PREFIX}-{module_name}-mysql-subnet-group"


def cluster_parameter_group_name(module_name: str, cluster_key: str) -> str:
    return f"{NAME_PREFIX}-{module_name}-{cluster_key}-mysql-cluster-pg"


def db_parameter_group_name(module_name: str, cluster_key: str) -> str:
    return f"{NAME_PREFIX}-{module_name}-{cluster_key}-mysql-db-pg"


def collapse_hyphens(name: str) -> str:
    return re.sub(r"-{2,}", "-", name)


def final_snapshot_identifier(module_name: str, suffix: str) -> str:
    """
    Lowercase, no consecutive hyphens, no trailing hyphen and at most 255 characters.
    The module name is normalized before the identifier is assembled.
    """
    normalized = collapse_hyphens(module_name.lower()).strip("-")
    tail = f"-mysql-fs-{suffix.lower()}"
    # only the module name is shortened: the suffix makes the identifier unique
    head = collapse_hyphens(f"{NAME_PREFIX}-{normalized}")[: MAX_SNAPSHOT_IDENTIFIER_LENGTH - len(tail)]
    return collapse_hyphens(head.rstrip("-") + tail).rstrip("-")


def instance_identifiers(cluster_key: str, instance_count: int) -> List[str]:
    return [f"{cluster_key}-{ordinal}" for ordinal in range(instance_count)]


def engine_major_version(engine_version: str) -> str:
    return ".".join(engine_version.split(".")[:2])


def engine_family(engine_version: str) -> Optional[str]:
    return engine_families.get(engine_major_version(engine_version))


def engine_name(engine_version: str) -> str:
    return legacy_engines.get(engine_major_version(engine_version), ENGINE)


def performance_insights_enabled(instance_type: str) -> bool:
    return burstable_small_instance_type.match(instance_type) is None


def dns_record_name(cluster_key: str, subdomain: str) -> str:
    return f"{cluster_key}.{subdomain}"


def dns_readonly_record_name(cluster_key: str, subdomain: str) -> str:
    return f"{cluster_key}-readonly.{subdomain}"


def fqdn(record_name: str, root_domain: Optional[str]) -> str:
    if not root_domain:
        return record_name.rstrip(".") + "."
    root = root_domain.rstrip(".")
    name = record_name.rstrip(".")
    if name == root or name.endswith("." + root):
        return name + "."
    return f"{name}.{root}."
