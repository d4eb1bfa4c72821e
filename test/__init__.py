from typing import Any, Iterator

from pytest import fixture

from resotoaurora.aws_client import AwsClient
from resotoaurora.config import ModuleConfig
from resotoaurora.context import ProvisionContext
from resotoaurora.state import StateFile
from resotoaurora.types import Json
from test.resources import BotoCannedSession, FakeAws


def config_json(**overrides: Any) -> Json:
    js: Json = {
        "name": "billing",
        "authentication": {"aws": {"region": "us-east-1"}},
        "internal_root_domain": "internal.example.com",
        "internal_subdomain": "prod",
        "network": {"vpc_id": "vpc-1"},
        "clusters": {
            "orders": {"master_password": "secret", "instance_count": 2, "database_name": "orders"},
        },
    }
    js.update(overrides)
    return js


@fixture
def module_config() -> ModuleConfig:
    return ModuleConfig.from_json(config_json()).validate()


@fixture
def canned_session() -> BotoCannedSession:
    return BotoCannedSession()


@fixture
def context(module_config: ModuleConfig, canned_session: BotoCannedSession) -> ProvisionContext:
    return ProvisionContext.from_config(module_config, canned_session)


@fixture
def aws_client(context: ProvisionContext) -> AwsClient:
    return AwsClient(context)


@fixture
def fake_aws() -> FakeAws:
    return FakeAws()


@fixture
def state_file(tmp_path: Any) -> Iterator[StateFile]:
    yield StateFile(str(tmp_path / "state.json"))
