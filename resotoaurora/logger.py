import json
import logging
import os
from argparse import Namespace
from logging import DEBUG, ERROR, INFO, WARNING, Formatter, LogRecord, StreamHandler, basicConfig, getLogger
from typing import Any, Dict, List, Optional

from resotoaurora.args import ArgumentParser

DEBUG2 = DEBUG - 1
TRACE = DEBUG - 5

# everything this module logs lives below this logger
ROOT_LOGGER = "resoto"

getLogger().setLevel(ERROR)
getLogger(ROOT_LOGGER).setLevel(INFO)


def add_args(arg_parser: ArgumentParser) -> None:
    group = arg_parser.add_mutually_exclusive_group()
    group.add_argument("--verbose", "-v", help="Verbose logging", dest="verbose", action="store_true", default=False)
    group.add_argument("--trace", help="Trace logging", dest="trace", action="store_true", default=False)
    group.add_argument("--quiet", help="Only log errors", dest="quiet", action="store_true", default=False)
    arg_parser.add_argument(
        "--log-text",
        help="Log plain text lines instead of json",
        dest="log_text",
        action="store_true",
        default=False,
    )


class JsonFormatter(Formatter):
    """
    One json object per log line.
    Resource and cluster passed via `extra` are added as own properties, so a run can be filtered per resource.
    """

    fields = {"timestamp": "asctime", "level": "levelname", "message": "message", "thread": "threadName"}
    extra_fields: List[str] = ["resource", "cluster"]

    def __init__(self, static_values: Optional[Dict[str, str]] = None, time_format: str = "%Y-%m-%dT%H:%M:%S"):
        super().__init__()
        self.static_values = static_values or {}
        self.time_format = time_format

    def format(self, record: LogRecord) -> str:
        record.message = record.getMessage()
        record.asctime = self.formatTime(record, self.time_format)
        message: Dict[str, Any] = {key: getattr(record, attr) for key, attr in self.fields.items()}
        for name in self.extra_fields:
            value = getattr(record, name, None)
            if value is not None:
                message[name] = value
        message.update(self.static_values)
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message["exception"] = record.exc_text
        return json.dumps(message, default=str)


def log_level(verbose: bool = False, trace: bool = False, quiet: bool = False) -> int:
    if trace or os.environ.get("RESOTOAURORA_TRACE", "false").lower() == "true":
        return TRACE
    elif verbose:
        return DEBUG
    elif quiet:
        return ERROR
    return INFO


def setup_logger(proc: str, *, level: int = INFO, plain_text: bool = False, force: bool = True) -> None:
    # plain text can also be enforced via env var
    plain_text = plain_text or os.environ.get("RESOTOAURORA_LOG_TEXT", "false").lower() == "true"
    if plain_text:
        log_format = f"%(asctime)s|{proc}|%(levelname)5s|%(threadName)12s  %(message)s"
        basicConfig(format=log_format, datefmt="%y-%m-%d %H:%M:%S", force=force)
    else:
        handler = StreamHandler()
        handler.setFormatter(JsonFormatter(static_values={"process": proc}))
        basicConfig(handlers=[handler], force=force)
    if level <= DEBUG:
        # botocore is only interesting, if everything else is interesting as well
        getLogger().setLevel(WARNING if level == DEBUG else DEBUG)
    getLogger(ROOT_LOGGER).setLevel(level)


def setup_logger_from_args(proc: str, args: Namespace) -> None:
    setup_logger(proc, level=log_level(args.verbose, args.trace, args.quiet), plain_text=args.log_text)


def add_logging_level(level_name: str, level_num: int) -> None:
    """
    Adds a new logging level and a method with the lower case level name to all loggers.
    Adding a level twice has no effect.
    """
    method_name = level_name.lower()
    if hasattr(logging, level_name) or hasattr(logging.getLoggerClass(), method_name):
        return

    def log_for_level(self, message, *args, **kwargs):
        if self.isEnabledFor(level_num):
            self._log(level_num, message, args, **kwargs)

    logging.addLevelName(level_num, level_name)
    setattr(logging, level_name, level_num)
    setattr(logging.getLoggerClass(), method_name, log_for_level)


add_logging_level("DEBUG2", DEBUG2)
add_logging_level("TRACE", TRACE)

log = getLogger("resoto.aurora")
