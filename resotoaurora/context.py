import threading
from functools import lru_cache
from typing import Optional, Dict, Type, Any

from attrs import define, field, frozen
from boto3.session import Session as BotoSession

from resotoaurora.config import ModuleConfig
from resotoaurora.logger import log


@define(hash=True, slots=False)
class AwsSessionHolder:
    access_key_id: Optional[str]
    secret_access_key: Optional[str]
    region: Optional[str]
    # Only here to override in tests
    session_class_factory: Type[BotoSession] = BotoSession

    # noinspection PyUnusedLocal
    @lru_cache(maxsize=128)
    def __session(self, thread_id: Any) -> BotoSession:
        if self.access_key_id and self.secret_access_key:
            return self.session_class_factory(
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                region_name=self.region,
            )
        else:
            # default credential discovery: env, shared credentials file, instance profile...
            return self.session_class_factory(region_name=self.region)

    def session(self) -> BotoSession:
        # sessions should not be shared across threads
        # https://boto3.amazonaws.com/v1/documentation/api/1.14.31/guide/session.html#multithreading-or-multiprocessing-with-sessions
        return self.__session(threading.current_thread().ident)


@frozen
class ProvisionContext:
    """
    Credentials and region shared by every resource of a module invocation.
    Immutable after construction.
    """

    module_name: str
    region: str
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    tags: Dict[str, str] = field(factory=dict)
    _sessions: AwsSessionHolder = field(default=None, eq=False)

    def __attrs_post_init__(self) -> None:
        if self._sessions is None:
            holder = AwsSessionHolder(self.access_key, self.secret_key, self.region)
            object.__setattr__(self, "_sessions", holder)

    @property
    def has_static_keys(self) -> bool:
        return bool(self.access_key and self.secret_key)

    def environment(self) -> Dict[str, str]:
        """
        Environment for shell invoked tooling.
        Static keys are only exported if both are defined, otherwise the default credential chain applies.
        """
        env = {"AWS_DEFAULT_REGION": self.region}
        if self.has_static_keys:
            env["AWS_ACCESS_KEY_ID"] = self.access_key  # type: ignore
            env["AWS_SECRET_ACCESS_KEY"] = self.secret_key  # type: ignore
        return env

    def sessions(self) -> AwsSessionHolder:
        return self._sessions

    def resource_tags(self, **additional: str) -> Dict[str, str]:
        return {"resoto:module": self.module_name, **self.tags, **additional}

    @staticmethod
    def from_config(
        config: ModuleConfig, session_class_factory: Optional[Type[BotoSession]] = None
    ) -> "ProvisionContext":
        aws = config.authentication.aws
        if aws.access_key and aws.secret_key:
            log.debug("Using static AWS access keys from the module configuration")
        else:
            if aws.access_key or aws.secret_key:
                log.warning("Only one of access_key and secret_key is defined - using default credential discovery")
            else:
                log.debug("No AWS access keys defined - using default credential discovery")
        sessions = AwsSessionHolder(aws.access_key, aws.secret_key, aws.region)
        if session_class_factory is not None:
            sessions.session_class_factory = session_class_factory
        return ProvisionContext(
            module_name=config.name,  # type: ignore
            region=aws.region,  # type: ignore
            access_key=aws.access_key,
            secret_key=aws.secret_key,
            tags=dict(config.tags),
            sessions=sessions,
        )
