from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner
from docker.errors import DockerException

from fyve.cli import build_container_service, cli
from fyve.docker.container import ReplacementResult
from fyve.docker.errors import EngineError, NotFound, PostCommitError, RollbackError
from fyve.settings import Settings

NEW_ID = "f" * 64


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FYVE_CONFIG_FILE", raising=False)
    return CliRunner()


@pytest.fixture
def service():
    service = MagicMock()
    service.replace.return_value = ReplacementResult(
        container={"Id": NEW_ID, "Config": {"Image": "docker.io/repo/app:v2"}},
    )
    with patch("fyve.cli.build_container_service", return_value=service) as build:
        service.build = build
        yield service


def test_update_success(runner, service):
    result = runner.invoke(cli, ["update", "web", "--tag", "v2"])

    assert result.exit_code == 0, result.output
    assert "✅ web is running docker.io/repo/app:v2 (ffffffffffff)" in result.output
    service.replace.assert_called_once_with("web", force_pull=True, new_tag="v2", timeout=None)


def test_update_options(runner, service):
    result = runner.invoke(cli, [
        "update", "web", "-t", "v2", "--no-pull", "--timeout", "30", "-d", "tcp://10.0.0.5:2375",
    ])

    assert result.exit_code == 0, result.output
    service.replace.assert_called_once_with("web", force_pull=False, new_tag="v2", timeout=30.0)
    (_, docker_host), _ = service.build.call_args
    assert docker_host == "tcp://10.0.0.5:2375"


def test_update_reads_app_name_from_config(runner, service, tmp_path):
    (tmp_path / "fyve.yaml").write_text("app: api\nport: 8080\n")

    result = runner.invoke(cli, ["update", "-t", "v2"])

    assert result.exit_code == 0, result.output
    service.replace.assert_called_once_with("api", force_pull=True, new_tag="v2", timeout=None)


def test_update_argument_overrides_config(runner, service, tmp_path):
    (tmp_path / "deploy.yaml").write_text("app: api\n")

    result = runner.invoke(cli, ["update", "worker", "-c", "deploy.yaml", "-t", "v2"])

    assert result.exit_code == 0, result.output
    assert service.replace.call_args[0][0] == "worker"


def test_update_without_app_name(runner, service):
    result = runner.invoke(cli, ["update", "-t", "v2"])

    assert result.exit_code == 2
    assert "app name must be given" in result.output
    service.replace.assert_not_called()


def test_update_reports_warnings(runner, service):
    service.replace.return_value = ReplacementResult(
        container={"Id": NEW_ID, "Config": {"Image": "docker.io/repo/app:v2"}},
        warnings=["remove old container web-old error: busy"],
    )

    result = runner.invoke(cli, ["update", "web", "-t", "v2"])

    assert result.exit_code == 3
    assert "remove old container web-old error: busy" in result.output


@pytest.mark.parametrize("error, exit_code, message", [
    (EngineError("create container error: boom", state="quiesced", rolled_back=True), 1,
     "old container restored"),
    (EngineError("pull image error: denied"), 1, "no changes made"),
    (NotFound("container web not found"), 1, "container web not found"),
    (PostCommitError("fetch new container information error: gone", container_id=NEW_ID), 3,
     "was updated but could not be inspected"),
    (RollbackError(["restore_old_container: rename failed"]), 4, "Manual intervention is required"),
])
def test_update_failures(runner, service, error, exit_code, message):
    service.replace.side_effect = error

    result = runner.invoke(cli, ["update", "web", "-t", "v2"])

    assert result.exit_code == exit_code
    assert message in result.output


def test_update_docker_unreachable(runner, service):
    service.build.side_effect = DockerException("Error while fetching server API version")

    result = runner.invoke(cli, ["update", "web", "-t", "v2"])

    assert result.exit_code == 1
    assert "Cannot connect to Docker engine" in result.output


def test_show_config(runner, monkeypatch):
    monkeypatch.setenv("FYVE_DOCKER_HOST", "tcp://10.0.0.5:2375")

    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "Docker Host: tcp://10.0.0.5:2375" in result.output
    assert "Update Deadline: 600.0s" in result.output


def test_build_container_service_wiring():
    settings = Settings(stop_timeout=15, replace_timeout=90, cleanup_attempts=5)
    client = MagicMock()

    with patch("fyve.cli.create_docker_client", return_value=client) as create_docker, \
            patch("fyve.cli.create_aws_client") as create_aws:
        service = build_container_service(settings, "tcp://10.0.0.5:2375")
        service.registry_auth._client("eu-west-1")

    create_docker.assert_called_once_with(settings, "tcp://10.0.0.5:2375")
    create_aws.assert_called_once_with(settings, "ecr", "eu-west-1")
    assert service.api is client.api
    assert service.stop_timeout == 15
    assert service.default_timeout == 90
    assert service.cleanup_attempts == 5


def test_update_with_missing_explicit_config(runner, service):
    result = runner.invoke(cli, ["update", "web", "-c", "missing.yaml", "-t", "v2"])

    assert result.exit_code == 2
    assert "config file not found" in result.output
    service.replace.assert_not_called()


def test_update_ignores_missing_default_config(runner, service):
    result = runner.invoke(cli, ["update", "web", "-t", "v2"])

    assert result.exit_code == 0, result.output
    service.replace.assert_called_once()
