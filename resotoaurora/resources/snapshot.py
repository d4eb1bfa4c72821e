import logging
from typing import ClassVar, Dict, List, Optional, Type

from attrs import define, field

from resotoaurora.aws_client import AwsClient
from resotoaurora.naming import final_snapshot_identifier
from resotoaurora.resources.base import AwsResource, Change, ChangeAction
from resotoaurora.state import StateFile
from resotoaurora.types import Json

log = logging.getLogger("resoto.aurora")


@define(eq=False, slots=False)
class FinalSnapshotIdentifier(AwsResource):
    """
    Name of the snapshot that is taken when a cluster is deleted.

    The random suffix is kept as long as the keepers (module name, cluster key, engine version,
    subnet group override) do not change. Any change creates a new suffix, so that repeated
    create/destroy cycles never collide with an existing snapshot.
    """

    kind: ClassVar[str] = "random_final_snapshot_identifier"
    resolve_before_destroy: ClassVar[bool] = True

    module_name: str = field(kw_only=True)
    keepers: Dict[str, str] = field(kw_only=True)
    state: StateFile = field(kw_only=True, repr=False)
    suffix: Optional[str] = field(default=None, kw_only=True)

    @staticmethod
    def keepers_for(
        module_name: str, cluster_key: str, engine_version: str, subnet_group_override: Optional[str]
    ) -> Dict[str, str]:
        return {
            "name": module_name,
            "cluster": cluster_key,
            "engine_version": engine_version,
            "db_subnet_group_name": subnet_group_override or "",
        }

    def read(self, client: AwsClient) -> Optional[Json]:
        suffix = self.state.peek_random_id(self.name, self.keepers)
        return {"suffix": suffix} if suffix else None

    def diff(self, current: Optional[Json]) -> Change:
        if current is None:
            return Change(ChangeAction.create, ["no identifier for the current keepers"])
        return Change.noop()

    def create(self, client: AwsClient) -> Json:
        return {"suffix": self.state.random_id(self.name, self.keepers)}

    def delete(self, client: AwsClient, current: Json) -> None:
        self.state.remove_random_id(self.name)

    def rotate(self, client: AwsClient) -> str:
        """
        The identifier was used by a deletion that is not a destroy (e.g. the replacement of the cluster).
        A snapshot with this name exists now: the next deletion needs a new identifier.
        """
        used = self.id
        self.state.remove_random_id(self.name)
        self.refresh(self.create(client))
        log.info(f"Final snapshot {used} exists: the next deletion uses {self.id}")
        return self.require("id")

    def refresh(self, current: Json) -> None:
        self.suffix = current["suffix"]
        self.id = final_snapshot_identifier(self.module_name, current["suffix"])

    @property
    def identifier(self) -> Optional[str]:
        return self.id

    def outputs(self) -> Json:
        return {"identifier": self.id, "keepers": self.keepers}


resources: List[Type[AwsResource]] = [FinalSnapshotIdentifier]
