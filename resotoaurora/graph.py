from enum import Enum
from typing import Dict, List, Optional, Type, TypeVar, Iterator

import networkx
from networkx.algorithms.dag import is_directed_acyclic_graph

from resotoaurora.error import ConfigurationError, DependencyNotSatisfied, GraphCycleError
from resotoaurora.logger import log
from resotoaurora.resources.base import AwsResource, Change

T = TypeVar("T", bound=AwsResource)


class NodeState(Enum):
    pending = "pending"
    ready = "ready"
    failed = "failed"
    skipped = "skipped"


class ResourceGraph(networkx.DiGraph):
    """
    Directed graph of resources: an edge points from a dependency to its dependent.
    Every node carries its reconcile state, the computed change and the error of the last walk.
    """

    def __init__(self, incoming_graph_data=None, **attr) -> None:
        super().__init__(incoming_graph_data, **attr)
        # cluster key -> reason why the cluster is not part of the graph
        self.excluded: Dict[str, DependencyNotSatisfied] = {}

    def add_resource(self, resource: AwsResource, *depends_on: Optional[AwsResource]) -> AwsResource:
        if resource in self:
            log.debug(f"{resource.rid} already part of the graph")
        else:
            self.add_node(resource, state=NodeState.pending, change=None, error=None)
        for dependency in depends_on:
            if dependency is None:
                continue
            if dependency not in self:
                raise DependencyNotSatisfied(resource.rid, dependency.rid)
            self.add_edge(dependency, resource)
        return resource

    def exclude(self, cluster_key: str, reason: DependencyNotSatisfied) -> None:
        log.warning(f"Cluster {cluster_key} is excluded: {reason}", extra={"cluster": cluster_key})
        self.excluded[cluster_key] = reason

    def validate(self) -> "ResourceGraph":
        if not is_directed_acyclic_graph(self):
            cycle = networkx.find_cycle(self)
            desc = " -> ".join(str(edge[0]) for edge in cycle)
            raise GraphCycleError(f"Resource graph has a cycle: {desc}")
        rids: Dict[str, AwsResource] = {}
        for node in self.nodes:
            if node.rid in rids:
                raise ConfigurationError(f"Resource {node.rid} is defined more than once")
            rids[node.rid] = node
        return self

    def generations(self, reverse: bool = False) -> List[List[AwsResource]]:
        """
        Resources grouped in generations: a generation only depends on the ones before.
        With reverse, the order used to delete resources.
        """
        graph = self.reverse(copy=False) if reverse else self
        return [sorted(gen, key=lambda r: r.rid) for gen in networkx.topological_generations(graph)]

    def resources(self, reverse: bool = False) -> Iterator[AwsResource]:
        for generation in self.generations(reverse):
            yield from generation

    def resources_of(self, clazz: Type[T], cluster_key: Optional[str] = None) -> List[T]:
        return [
            node
            for node in self.resources()
            if isinstance(node, clazz) and (cluster_key is None or node.cluster_key == cluster_key)
        ]

    def by_rid(self, rid: str) -> Optional[AwsResource]:
        return next((node for node in self.nodes if node.rid == rid), None)

    def state(self, resource: AwsResource) -> NodeState:
        return self.nodes[resource]["state"]  # type: ignore

    def change(self, resource: AwsResource) -> Optional[Change]:
        return self.nodes[resource]["change"]  # type: ignore

    def error(self, resource: AwsResource) -> Optional[str]:
        return self.nodes[resource]["error"]  # type: ignore

    def set_state(
        self, resource: AwsResource, state: NodeState, change: Optional[Change] = None, error: Optional[str] = None
    ) -> None:
        data = self.nodes[resource]
        data["state"] = state
        data["change"] = change
        data["error"] = error

    def reset(self) -> None:
        for node in self.nodes:
            self.set_state(node, NodeState.pending)
