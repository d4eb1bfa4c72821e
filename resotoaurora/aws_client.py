from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Any, List, Dict

from botocore.config import Config
from botocore.exceptions import ClientError
from retrying import retry

from resotoaurora.context import ProvisionContext
from resotoaurora.types import Json, JsonElement
from resotoaurora.utils import utc_str, log_runtime, value_in_path

log = logging.getLogger("resoto.aurora")

ThrottlingErrors = {"RequestLimitExceeded", "Throttling", "ThrottlingException", "TooManyRequestsException"}
SecretArgs = {"MasterUserPassword"}


def error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code") or "Unknown Code"


def is_retryable_exception(e: Exception) -> bool:
    if isinstance(e, ClientError) and error_code(e) in ThrottlingErrors:
        log.debug(f"AWS throttles requests ({error_code(e)}), retry with exponential backoff")
        return True
    return False


# throttled requests are retried for roughly 25 minutes at most
with_throttling_retry = retry(
    stop_max_attempt_number=10,
    wait_exponential_multiplier=3000,
    wait_exponential_max=300000,
    retry_on_exception=is_retryable_exception,
)


def plain_json(node: Any) -> JsonElement:
    """
    Boto returns datetime objects in its responses.
    Everything handed out by the client is plain json, so resources can compare and store it.
    """
    if isinstance(node, dict):
        return {key: plain_json(value) for key, value in node.items()}
    elif isinstance(node, list):
        return [plain_json(item) for item in node]
    elif isinstance(node, datetime):
        return utc_str(node)
    elif node is None or isinstance(node, (str, int, float, bool)):
        return node
    raise AttributeError(f"Unsupported type: {type(node)}")


def describe_args(args: Dict[str, Any]) -> str:
    if not args:
        return ""
    return " with " + ", ".join(f"{k}={'***' if k in SecretArgs else v}" for k, v in args.items())


class AwsClient:
    """
    Executes AWS api calls in the region of the module.

    Reading calls (get, list) can name the error codes that only mean "does not exist":
    they are answered with None or an empty list. All other errors reach the caller unchanged.
    Throttling is retried on every call.
    """

    def __init__(self, context: ProvisionContext, region: Optional[str] = None) -> None:
        self.context = context
        self.region = region or context.region

    def for_region(self, region: str) -> AwsClient:
        return AwsClient(self.context, region=region)

    def client(self, aws_service: str, max_attempts: int = 1) -> Any:
        # adaptive: botocore slows down on its own before we see throttling errors
        config = Config(retries={"max_attempts": max_attempts, "mode": "adaptive"})
        return self.context.sessions().session().client(aws_service, region_name=self.region, config=config)

    def __execute(
        self, aws_service: str, action: str, result_name: Optional[str], max_attempts: int, **kwargs: Any
    ) -> JsonElement:
        what = f"{aws_service}:{action}{describe_args(kwargs)}"
        log.debug(f"[Aws] {what}")
        client = self.client(aws_service, max_attempts)
        method = action.replace("-", "_")
        if not client.can_paginate(method):
            response = plain_json(getattr(client, method)(**kwargs))
            return value_in_path(response, result_name) if result_name else response  # type: ignore

        items: List[JsonElement] = []
        for num, page in enumerate(client.get_paginator(method).paginate(**kwargs)):
            log.debug2(f"[Aws] {what}: page {num}")  # type: ignore
            js = plain_json(page)
            part = value_in_path(js, result_name) if result_name else js  # type: ignore
            if isinstance(part, list):
                items.extend(part)
            elif part is not None:
                items.append(part)
        log.debug(f"[Aws] {what}: {len(items)} items")
        return items

    @with_throttling_retry  # type: ignore
    @log_runtime
    def __read(
        self, aws_service: str, action: str, result_name: Optional[str], expected_errors: List[str], **kwargs: Any
    ) -> JsonElement:
        try:
            return self.__execute(aws_service, action, result_name, 5, **kwargs)
        except ClientError as e:
            if error_code(e) in expected_errors:
                log.debug(f"[Aws] {aws_service}:{action} answered with {error_code(e)}")
                return None
            raise

    @with_throttling_retry  # type: ignore
    @log_runtime
    def call(self, aws_service: str, action: str, result_name: Optional[str] = None, **kwargs: Any) -> JsonElement:
        """Mutating call: executed exactly once by botocore, throttling is retried here."""
        return self.__execute(aws_service, action, result_name, 1, **kwargs)

    def get(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str],
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> Optional[Json]:
        return self.__read(aws_service, action, result_name, expected_errors or [], **kwargs)  # type: ignore

    def list(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str],
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> List[Any]:
        result = self.__read(aws_service, action, result_name, expected_errors or [], **kwargs)
        if result is None:
            return []
        return result if isinstance(result, list) else [result]

    def wait(self, aws_service: str, waiter_name: str, delay: int = 30, max_attempts: int = 120, **kwargs: Any) -> None:
        """
        Block until the waiter condition is reached. botocore.exceptions.WaiterError is raised on timeout.
        """
        log.info(f"[Aws] waiting for {aws_service} {waiter_name} {kwargs}")
        waiter = self.client(aws_service).get_waiter(waiter_name)
        waiter.wait(WaiterConfig={"Delay": delay, "MaxAttempts": max_attempts}, **kwargs)
        log.debug(f"[Aws] {aws_service} {waiter_name} reached")
