import argparse
import os
from typing import Any, Union, Callable, Optional

DEFAULT_ENV_ARGS_PREFIX = "RESOTOAURORA_"


class Namespace(argparse.Namespace):
    def __getattr__(self, item):
        return None


class ArgumentParser(argparse.ArgumentParser):
    # Class variable containing the last return value of parse_args()
    # If parse_args() hasn't been called yet will return None for any
    # attribute.
    args = Namespace()

    def __init__(
        self,
        *args,
        env_args_prefix: str = DEFAULT_ENV_ARGS_PREFIX,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.env_args_prefix = env_args_prefix

    def env_name(self, action: argparse.Action) -> Optional[str]:
        for option_string in action.option_strings:
            if option_string.startswith("--"):
                return self.env_args_prefix + option_string[2:].replace("-", "_").upper()
        return None

    def parse_known_args(self, args=None, namespace=None):
        for action in self._actions:
            env_name = self.env_name(action)
            if env_name is None or action.default == argparse.SUPPRESS:
                continue
            env_value = os.environ.get(env_name)
            if env_value is None:
                continue
            if isinstance(action.type, type) or callable(action.type):
                type_goal = action.type
            else:
                type_goal = type(action.default)

            if action.nargs not in (0, None):
                action.default = [convert(v, type_goal) for v in env_value.split(" ")]
            else:
                action.default = convert(env_value, type_goal)
        ret_args, ret_argv = super().parse_known_args(args=args, namespace=namespace)
        ArgumentParser.args = ret_args
        return ret_args, ret_argv


def get_arg_parser(
    add_help: bool = True,
    description: str = "resoto aurora",
    env_args_prefix: str = DEFAULT_ENV_ARGS_PREFIX,
) -> ArgumentParser:
    return ArgumentParser(description=description, add_help=add_help, env_args_prefix=env_args_prefix)


def add_args(arg_parser: ArgumentParser) -> None:
    arg_parser.add_argument(
        "command",
        help="What to do: plan, apply, destroy, plan-destroy, output or permissions (default: plan)",
        choices=["plan", "apply", "destroy", "plan-destroy", "output", "permissions"],
        nargs="?",
        default="plan",
    )
    arg_parser.add_argument(
        "--config",
        "-c",
        help="Path to the module configuration (YAML or JSON)",
        dest="config",
        type=str,
        default="resotoaurora.yaml",
    )
    arg_parser.add_argument(
        "--state-file",
        help="Override the state file defined in the module configuration",
        dest="state_file",
        type=str,
        default=None,
    )
    arg_parser.add_argument(
        "--pool-size",
        help="Number of resources reconciled in parallel (default: 10)",
        dest="pool_size",
        type=int,
        default=10,
    )
    arg_parser.add_argument(
        "--no-hooks",
        help="Do not run post_apply hooks",
        dest="no_hooks",
        action="store_true",
        default=False,
    )


# removed from types in 3.0-3.9: introduced again in 3.10
NoneType = type(None)


def convert(value: Any, type_goal: Union[type, Callable]) -> Any:
    if type_goal is NoneType:
        return value
    elif isinstance(type_goal, type):
        try:
            if type_goal in (str, int, float, complex):
                return type_goal(value)
            elif type_goal is bool:
                return value.lower() in ("true", "1", "yes")
            else:
                # don't know how to handle this type
                return value
        except ValueError:
            # can not convert value
            return value
    elif callable(type_goal):
        return type_goal(value)

