import os

import boto3
import pytest
from moto import mock_aws

from fyve.settings import get_settings
from tests.consts import TEST_APP_NAME, TEST_IMAGE, TEST_INTERNAL_ADDRESS, TEST_REGION
from tests.fixtures.fake_docker import FakeDockerAPI


def point_away_from_aws():
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = TEST_REGION


@pytest.fixture
def mocked_aws():
    point_away_from_aws()
    with mock_aws():
        yield


@pytest.fixture
def ecr_client(mocked_aws):
    return boto3.client("ecr", region_name=TEST_REGION)


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def docker_api():
    """Engine with a running 'web' container on a public and an internal network."""
    api = FakeDockerAPI()
    api.add_network("public")
    api.add_network("internal")
    api.add_container(
        TEST_APP_NAME,
        TEST_IMAGE,
        networks={
            "public": {"Aliases": ["web"]},
            "internal": {
                "IPAMConfig": {"IPv4Address": TEST_INTERNAL_ADDRESS},
                "Aliases": ["web", "api"],
            },
        },
        config={"Env": ["NODE_ENV=production"], "Labels": {"app": "web"}},
    )
    return api
