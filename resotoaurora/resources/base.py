from __future__ import annotations

import logging
from abc import ABC
from enum import Enum
from typing import ClassVar, Optional, List, Any, Dict

from attrs import define, field

from resotoaurora.aws_client import AwsClient
from resotoaurora.error import ProvisionError, ResourceNotReady
from resotoaurora.types import Json

log = logging.getLogger("resoto.aurora")

# words of an api action that are upper case in the IAM action name
acronyms = {"db": "DB"}


@define
class AwsApiSpec:
    """
    An AWS API action that is called by a resource.
    """

    service: str
    api_action: str
    override_iam_permission: Optional[str] = None  # only set if the permission can not be derived

    def iam_permission(self) -> str:
        if self.override_iam_permission:
            return self.override_iam_permission
        else:
            action = "".join(acronyms.get(word, word.title()) for word in self.api_action.split("-"))
            return f"{self.service}:{action}"


class ChangeAction(Enum):
    noop = "noop"
    create = "create"
    update = "update"
    replace = "replace"
    delete = "delete"
    read = "read"


@define
class Change:
    action: ChangeAction
    reasons: List[str] = field(factory=list)

    @staticmethod
    def noop() -> Change:
        return Change(ChangeAction.noop)

    @staticmethod
    def create() -> Change:
        return Change(ChangeAction.create, ["does not exist"])

    def __str__(self) -> str:
        reasons = f" ({', '.join(self.reasons)})" if self.reasons else ""
        return f"{self.action.value}{reasons}"


@define(eq=False, slots=False)
class AwsResource(ABC):
    """
    Base class of everything this module manages.

    A resource knows how to read its current state, how to compare it with the desired state
    and how to create, update, replace or delete itself. Values of other resources are only
    accessed while reconciling: the graph guarantees that all dependencies are ready by then.
    """

    # The name of the kind of the resource. Needs to be globally unique.
    kind: ClassVar[str] = "aws_resource"
    # API calls to read the resource.
    read_apis: ClassVar[List[AwsApiSpec]] = []
    # API calls that change the resource.
    mutator_apis: ClassVar[List[AwsApiSpec]] = []
    # Resolved before a destroy pass, so that resources that are deleted earlier can use its values.
    resolve_before_destroy: ClassVar[bool] = False

    # physical name of the resource
    name: str
    # the key of the cluster this resource belongs to, None for shared resources
    cluster_key: Optional[str] = field(default=None, kw_only=True)
    # AWS identifier, available once the resource exists
    id: Optional[str] = field(default=None, kw_only=True)
    arn: Optional[str] = field(default=None, kw_only=True)

    @property
    def rid(self) -> str:
        return f"{self.kind}:{self.name}"

    def read(self, client: AwsClient) -> Optional[Json]:
        """Return the current state in AWS or None if the resource does not exist."""
        raise NotImplementedError(f"{self.kind} can not be read")

    def diff(self, current: Optional[Json]) -> Change:
        if current is None:
            return Change.create()
        return Change.noop()

    def create(self, client: AwsClient) -> Json:
        raise NotImplementedError(f"{self.kind} can not be created")

    def update(self, client: AwsClient, current: Json, change: Change) -> Json:
        raise NotImplementedError(f"{self.kind} can not be updated")

    def delete(self, client: AwsClient, current: Json) -> None:
        raise NotImplementedError(f"{self.kind} can not be deleted")

    def replace(self, client: AwsClient, current: Json) -> Json:
        self.delete(client, current)
        return self.create(client)

    def destroy_blocked(self, client: AwsClient) -> Optional[str]:
        """
        Reason why this resource can not be deleted.
        Checked for all resources before a destroy deletes anything.
        """
        return None

    def refresh(self, current: Json) -> None:
        """Take over identifiers and computed values from the current state."""
        pass

    def plan(self, client: AwsClient) -> Change:
        current = self.read(client)
        change = self.diff(current)
        if current is not None:
            # dependents plan against the existing values
            self.refresh(current)
        return change

    def reconcile(self, client: AwsClient) -> Change:
        current = self.read(client)
        change = self.diff(current)
        if change.action == ChangeAction.create:
            log.info(f"Creating {self.rid}")
            current = self.create(client)
        elif change.action == ChangeAction.update:
            log.info(f"Updating {self.rid}: {change}")
            current = self.update(client, current, change)  # type: ignore
        elif change.action == ChangeAction.replace:
            log.info(f"Replacing {self.rid}: {change}")
            current = self.replace(client, current)  # type: ignore
        else:
            log.debug(f"{self.rid} is up to date")
        if current is None:
            raise ProvisionError(f"{self.rid} does not exist after reconcile")
        self.refresh(current)
        return change

    def destroy(self, client: AwsClient) -> Change:
        current = self.read(client)
        if current is None:
            log.debug(f"{self.rid} does not exist - nothing to delete")
            return Change.noop()
        log.info(f"Deleting {self.rid}")
        self.delete(client, current)
        return Change(ChangeAction.delete)

    def plan_destroy(self, client: AwsClient) -> Change:
        return Change(ChangeAction.delete) if self.read(client) is not None else Change.noop()

    def outputs(self) -> Json:
        return {"name": self.name, "id": self.id, "arn": self.arn}

    def require(self, attribute: str) -> Any:
        value = getattr(self, attribute)
        if value is None:
            raise ResourceNotReady(self.rid, attribute)
        return value

    @classmethod
    def called_apis(cls) -> List[AwsApiSpec]:
        return cls.read_apis + cls.mutator_apis

    def __str__(self) -> str:
        return self.rid


@define(eq=False, slots=False)
class AwsDataResource(AwsResource, ABC):
    """
    Resource that is owned somewhere else: it is only looked up, never changed.
    """

    kind: ClassVar[str] = "aws_data_resource"
    resolve_before_destroy: ClassVar[bool] = True

    def diff(self, current: Optional[Json]) -> Change:
        return Change(ChangeAction.read)

    def plan(self, client: AwsClient) -> Change:
        return self.reconcile(client)

    def reconcile(self, client: AwsClient) -> Change:
        current = self.read(client)
        if current is None:
            raise ProvisionError(f"{self.rid} could not be found")
        self.refresh(current)
        return Change(ChangeAction.read)

    def destroy(self, client: AwsClient) -> Change:
        return Change.noop()

    def plan_destroy(self, client: AwsClient) -> Change:
        return Change.noop()


def tag_list(tags: Dict[str, str]) -> List[Json]:
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


def tags_from_list(tags: Optional[List[Json]]) -> Dict[str, str]:
    return {t["Key"]: t.get("Value", "") for t in tags or [] if "Key" in t}
