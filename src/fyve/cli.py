# cli.py
import logging
import sys
from typing import Optional

import click
from docker.errors import DockerException

from fyve.app_config import ConfigError, load_app_config
from fyve.clients import create_aws_client, create_docker_client
from fyve.docker.container import ContainerService
from fyve.docker.errors import (
    AuthError,
    EngineError,
    FyveError,
    InvalidReference,
    NotFound,
    PostCommitError,
    RollbackError,
)
from fyve.docker.images.registry import RegistryAuthenticator
from fyve.settings import Settings, get_settings

logger = logging.getLogger(__name__)

EXIT_FAILED = 1
EXIT_COMMITTED_WITH_WARNINGS = 3
EXIT_ROLLBACK_FAILED = 4


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_container_service(settings: Settings, docker_host: Optional[str] = None) -> ContainerService:
    """Wire a ContainerService to the Docker engine and ECR."""
    client = create_docker_client(settings, docker_host)
    registry_auth = RegistryAuthenticator(lambda region: create_aws_client(settings, "ecr", region))
    return ContainerService(
        client.api,
        registry_auth=registry_auth,
        stop_timeout=settings.stop_timeout,
        default_timeout=settings.replace_timeout,
        cleanup_attempts=settings.cleanup_attempts,
    )


def resolve_app_name(app_name: Optional[str], config_file: str, explicit: bool = False) -> str:
    """App name from the command line, else from the config file.

    A config file named with --config must load; the default one is optional
    when the app name is given.
    """
    try:
        config = load_app_config(config_file)
    except ConfigError as e:
        if explicit:
            raise click.UsageError(str(e))
        if app_name:
            logger.debug(f"Ignoring config file: {e}")
            return app_name
        raise click.UsageError(f"app name must be given as an argument or in the config file ({e})")

    config.override_app_name(app_name)
    return config.app


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx, verbose):
    """Deploy and update containerized applications"""
    settings = get_settings()
    configure_logging(settings, verbose)
    ctx.obj = settings


@cli.command()
@click.pass_obj
def show_config(settings: Settings):
    """Show current configuration"""
    click.echo("Current Configuration:")
    click.echo(f"  Docker Host: {settings.docker_host or '(from environment)'}")
    click.echo(f"  Docker Timeout: {settings.docker_timeout}s")
    click.echo(f"  Update Deadline: {settings.replace_timeout}s")
    click.echo(f"  Stop Timeout: {settings.stop_timeout if settings.stop_timeout is not None else '(engine default)'}")
    click.echo(f"  AWS Region: {settings.aws_region}")
    click.echo(f"  AWS Profile: {settings.aws_profile or '(default)'}")
    click.echo(f"  AWS Endpoint: {settings.aws_endpoint_url or '(default)'}")
    click.echo(f"  Config File: {settings.config_file}")
    click.echo(f"  Log Level: {settings.log_level}")


@cli.command()
@click.argument("app_name", required=False)
@click.option("--tag", "-t", default="", help="New image tag (default: keep the current tag)")
@click.option("--config", "-c", "config_file", default=None, help="Path to configuration file")
@click.option("--docker-host", "-d", default=None, help="Remote Docker host URL")
@click.option("--pull/--no-pull", default=True, help="Pull the image before recreating the container")
@click.option("--timeout", type=float, default=None, help="Deadline in seconds for the update")
@click.pass_obj
def update(settings: Settings, app_name, tag, config_file, docker_host, pull, timeout):
    """Update a running application container to a new image tag"""
    app_name = resolve_app_name(app_name, config_file or settings.config_file, explicit=config_file is not None)
    click.echo(f"Updating {app_name}" + (f" to tag {tag}" if tag else "") + "...")

    try:
        service = build_container_service(settings, docker_host)
    except DockerException as e:
        click.echo(f"❌ Cannot connect to Docker engine: {e}", err=True)
        sys.exit(EXIT_FAILED)

    try:
        result = service.replace(app_name, force_pull=pull, new_tag=tag, timeout=timeout)
    except RollbackError as e:
        click.echo(f"❌ Update failed and the old container could not be restored: {e}", err=True)
        click.echo("   Manual intervention is required.", err=True)
        sys.exit(EXIT_ROLLBACK_FAILED)
    except PostCommitError as e:
        click.echo(f"⚠️  {app_name} was updated but could not be inspected: {e}", err=True)
        sys.exit(EXIT_COMMITTED_WITH_WARNINGS)
    except (NotFound, InvalidReference, AuthError) as e:
        click.echo(f"❌ Update failed: {e}", err=True)
        sys.exit(EXIT_FAILED)
    except EngineError as e:
        status = "old container restored" if e.rolled_back else "no changes made"
        click.echo(f"❌ Update failed ({status}): {e}", err=True)
        sys.exit(EXIT_FAILED)
    except FyveError as e:
        click.echo(f"❌ Update failed: {e}", err=True)
        sys.exit(EXIT_FAILED)

    for warning in result.warnings:
        click.echo(f"⚠️  {warning}", err=True)

    image = (result.container.get("Config") or {}).get("Image", "")
    click.echo(f"✅ {app_name} is running {image} ({result.id[:12]})")
    if result.warnings:
        sys.exit(EXIT_COMMITTED_WITH_WARNINGS)


def main():
    cli()


if __name__ == "__main__":
    main()
