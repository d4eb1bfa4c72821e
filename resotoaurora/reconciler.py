from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional

from attrs import define, field
from networkx import DiGraph, descendants
from prometheus_client import Summary

from resotoaurora.aws_client import AwsClient
from resotoaurora.error import DependencyNotSatisfied, ResourceNotReady
from resotoaurora.graph import NodeState, ResourceGraph
from resotoaurora.logger import log
from resotoaurora.resources.base import AwsResource, Change, ChangeAction
from resotoaurora.types import Json
from resotoaurora.utils import ordinal

metrics_plan = Summary("resoto_aurora_plan_seconds", "Time it took the plan() method")
metrics_apply = Summary("resoto_aurora_apply_seconds", "Time it took the apply() method")
metrics_destroy = Summary("resoto_aurora_destroy_seconds", "Time it took the destroy() method")

NodeFn = Callable[[AwsResource, AwsClient], Change]


@define
class NodeResult:
    rid: str
    state: NodeState
    cluster_key: Optional[str] = None
    change: Optional[Change] = None
    error: Optional[str] = None

    def to_json(self) -> Json:
        result: Json = {"resource": self.rid, "state": self.state.value}
        if self.cluster_key:
            result["cluster"] = self.cluster_key
        if self.change:
            result["action"] = self.change.action.value
            if self.change.reasons:
                result["reasons"] = self.change.reasons
        if self.error:
            result["error"] = self.error
        return result


@define
class ReconcileResult:
    operation: str
    nodes: List[NodeResult] = field(factory=list)

    @property
    def failed(self) -> List[NodeResult]:
        return [n for n in self.nodes if n.state == NodeState.failed]

    @property
    def skipped(self) -> List[NodeResult]:
        return [n for n in self.nodes if n.state == NodeState.skipped]

    @property
    def success(self) -> bool:
        return not self.failed

    def changes(self) -> List[NodeResult]:
        return [
            n
            for n in self.nodes
            if n.change is not None and n.change.action not in (ChangeAction.noop, ChangeAction.read)
        ]

    def to_json(self) -> Json:
        return {
            "operation": self.operation,
            "success": self.success,
            "resources": [n.to_json() for n in self.nodes],
        }


class Reconciler:
    """
    Walks the resource graph with a pool of threads.

    A resource is started as soon as all of its dependencies are ready.
    If a resource fails, all resources depending on it are skipped, while independent resources continue.
    """

    def __init__(self, graph: ResourceGraph, client: AwsClient, pool_size: int = 10) -> None:
        self.graph = graph
        self.client = client
        self.pool_size = max(1, pool_size)

    @metrics_plan.time()
    def plan(self) -> ReconcileResult:
        log.info("Planning changes")
        self.__walk(self.graph, self.__plan_node, "planner")
        return self.__result("plan", reverse=False)

    @metrics_apply.time()
    def apply(self) -> ReconcileResult:
        log.info("Applying changes")
        self.__walk(self.graph, lambda node, client: node.reconcile(client), "reconciler")
        return self.__result("apply", reverse=False)

    @metrics_destroy.time()
    def destroy(self, dry_run: bool = False) -> ReconcileResult:
        """
        Delete all resources in reverse dependency order.
        Resources that provide values to the deletion of others are resolved first.
        """
        log.info("Planning destruction" if dry_run else "Destroying resources")
        graph = self.graph
        resolve = [node for node in graph.nodes if node.resolve_before_destroy]
        self.__walk(graph.subgraph(resolve), self.__plan_node if dry_run else self.__resolve_node, "resolver")
        unresolved = {node: graph.error(node) for node in resolve if graph.state(node) != NodeState.ready}

        graph.reset()
        for node in unresolved:
            # deleting resources that depend on an unresolved value is not safe
            for dependent in descendants(graph, node):
                self.__skip(dependent, node)
        for node, reason in self.__blocked(unresolved).items():
            # keep everything that is required by a resource that will not be deleted
            graph.set_state(node, NodeState.failed, error=reason)
            for dependent in descendants(graph, node):
                self.__skip(dependent, node)
        fn: NodeFn = (lambda node, client: node.plan_destroy(client)) if dry_run else self.__destroy_node
        # the reversed graph starts with the resources nothing else depends on
        self.__walk(graph.reverse(copy=False), fn, "destroyer", keep_state=True)
        for node, error in unresolved.items():
            log.error(f"Could not resolve {node.rid} before destroy: {error}")
            graph.set_state(node, NodeState.failed, error=error)
        return self.__result("plan-destroy" if dry_run else "destroy", reverse=True)

    def __blocked(self, ignore: Dict[AwsResource, Optional[str]]) -> Dict[AwsResource, str]:
        blocked: Dict[AwsResource, str] = {}
        for node in self.graph.resources():
            if node in ignore or self.graph.state(node) != NodeState.pending:
                continue
            try:
                reason = node.destroy_blocked(self.client)
            except Exception as e:
                reason = str(e) or type(e).__name__
            if reason:
                log.error(f"{node.rid} can not be deleted: {reason}", extra={"resource": node.rid})
                blocked[node] = reason
        return blocked

    def __plan_node(self, node: AwsResource, client: AwsClient) -> Change:
        try:
            return node.plan(client)
        except ResourceNotReady as e:
            # the value is created by a resource that does not exist yet
            return Change(ChangeAction.update, [f"{e.attribute} of {e.resource} known after apply"])

    @staticmethod
    def __resolve_node(node: AwsResource, client: AwsClient) -> Change:
        return node.reconcile(client)

    @staticmethod
    def __destroy_node(node: AwsResource, client: AwsClient) -> Change:
        return node.destroy(client)

    def __walk(self, graph: DiGraph, fn: NodeFn, name: str, keep_state: bool = False) -> None:
        if graph.number_of_nodes() == 0:
            log.debug(f"No resources to walk by {name}")
            return
        if not keep_state:
            for node in graph.nodes:
                self.graph.set_state(node, NodeState.pending)
        else:
            stopped = (NodeState.skipped, NodeState.failed)
            for node in [n for n in graph.nodes if self.graph.state(n) in stopped]:
                for dependent in descendants(graph, node):
                    self.__skip(dependent, node)

        def startable(node: AwsResource) -> bool:
            return self.graph.state(node) == NodeState.pending and all(
                self.graph.state(p) == NodeState.ready for p in graph.predecessors(node)
            )

        running: Dict[Future, AwsResource] = {}
        started = set()
        num_pass = 1
        with ThreadPoolExecutor(max_workers=self.pool_size, thread_name_prefix=name) as executor:

            def start(nodes: List[AwsResource]) -> None:
                for node in sorted(nodes, key=lambda n: n.rid):
                    if node not in started and startable(node):
                        started.add(node)
                        log.debug(f"Starting {node.rid}")
                        running[executor.submit(fn, node, self.client)] = node

            start(list(graph.nodes))
            while running:
                log.debug(f"Waiting for {len(running)} resources in {ordinal(num_pass)} pass")
                done, _ = wait(list(running.keys()), return_when=FIRST_COMPLETED)
                successors: List[AwsResource] = []
                for future in done:
                    node = running.pop(future)
                    try:
                        change = future.result()
                        self.graph.set_state(node, NodeState.ready, change)
                        log.info(f"{node.rid}: {change}", extra={"resource": node.rid})
                        successors.extend(graph.successors(node))
                    except Exception as e:
                        error = str(e) or type(e).__name__
                        log.error(f"{node.rid} failed: {error}", extra={"resource": node.rid})
                        self.graph.set_state(node, NodeState.failed, error=error)
                        for dependent in descendants(graph, node):
                            self.__skip(dependent, node)
                start(successors)
                num_pass += 1

    def __skip(self, node: AwsResource, cause: AwsResource) -> None:
        if self.graph.state(node) != NodeState.pending:
            return
        reason = DependencyNotSatisfied(node.rid, cause.rid)
        log.warning(f"Skipping: {reason}")
        self.graph.set_state(node, NodeState.skipped, error=str(reason))

    def __result(self, operation: str, reverse: bool) -> ReconcileResult:
        graph = self.graph
        result = ReconcileResult(operation)
        for node in graph.resources(reverse):
            result.nodes.append(
                NodeResult(node.rid, graph.state(node), node.cluster_key, graph.change(node), graph.error(node))
            )
        for cluster_key, reason in sorted(graph.excluded.items()):
            result.nodes.append(NodeResult(reason.resource, NodeState.skipped, cluster_key, error=str(reason)))
        return result
