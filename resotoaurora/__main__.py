import json
import sys
from typing import Optional, Type

from boto3.session import Session as BotoSession

from resotoaurora.args import get_arg_parser, add_args
from resotoaurora.aws_client import AwsClient
from resotoaurora.builder import build_graph
from resotoaurora.config import ModuleConfig, load_config
from resotoaurora.context import ProvisionContext
from resotoaurora.error import AuroraException, ConfigurationError
from resotoaurora.logger import log, setup_logger_from_args, add_args as logging_add_args
from resotoaurora.outputs import module_outputs
from resotoaurora.proc import run_hooks
from resotoaurora.reconciler import Reconciler
from resotoaurora.resources import required_permissions
from resotoaurora.state import StateFile
from resotoaurora.types import Json


def main() -> None:
    arg_parser = get_arg_parser(description="Aurora MySQL clusters on AWS")
    add_args(arg_parser)
    logging_add_args(arg_parser)
    args = arg_parser.parse_args()
    setup_logger_from_args("resotoaurora", args)

    if args.command == "permissions":
        print(json.dumps(required_permissions(), indent=2))
        return

    try:
        config = load_config(args.config)
        result = run(
            config,
            args.command,
            state_file=args.state_file,
            pool_size=args.pool_size,
            hooks=not args.no_hooks,
        )
    except ConfigurationError as e:
        log.error(f"Configuration error: {e}")
        sys.exit(1)
    except AuroraException as e:
        log.error(f"{args.command} failed: {e}")
        sys.exit(1)

    print(json.dumps(result, indent=2))
    if not result.get("success", True):
        sys.exit(1)


def run(
    config: ModuleConfig,
    command: str,
    *,
    state_file: Optional[str] = None,
    pool_size: int = 10,
    hooks: bool = True,
    session_class_factory: Optional[Type[BotoSession]] = None,
) -> Json:
    context = ProvisionContext.from_config(config, session_class_factory)
    state = StateFile(state_file or config.state_file)
    graph = build_graph(config, context, state)
    reconciler = Reconciler(graph, AwsClient(context), pool_size)

    if command == "plan":
        return reconciler.plan().to_json()
    elif command == "output":
        result = reconciler.plan()
        return {"success": result.success, "outputs": module_outputs(graph)}
    elif command == "apply":
        result = reconciler.apply()
        if result.success and hooks and config.post_apply:
            run_hooks(config.post_apply, context.environment())
        return {**result.to_json(), "outputs": module_outputs(graph)}
    elif command == "destroy":
        return reconciler.destroy().to_json()
    elif command == "plan-destroy":
        return reconciler.destroy(dry_run=True).to_json()
    else:
        raise ConfigurationError(f"Unknown command {command}")


if __name__ == "__main__":
    main()
