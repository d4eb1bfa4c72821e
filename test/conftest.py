# make the fixtures defined in the test package available to all test modules
from test import aws_client, canned_session, context, fake_aws, module_config, state_file  # noqa: F401
