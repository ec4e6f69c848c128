"""Factories for the Docker engine and AWS service clients."""
import logging
from typing import Any, Optional

import boto3
import docker

from fyve.settings import Settings

logger = logging.getLogger(__name__)


def create_docker_client(settings: Settings, host: Optional[str] = None) -> docker.DockerClient:
    """Create a Docker client for the given engine endpoint.

    Args:
        settings: CLI settings
        host: Engine endpoint; falls back to settings, then DOCKER_HOST and
            the local socket

    Returns:
        DockerClient with API version negotiation enabled
    """
    base_url = host or settings.docker_host
    if base_url:
        logger.debug(f"Connecting to Docker engine at {base_url}")
        return docker.DockerClient(base_url=base_url, version="auto", timeout=settings.docker_timeout)

    logger.debug("Connecting to Docker engine from environment")
    return docker.from_env(version="auto", timeout=settings.docker_timeout)


def create_aws_client(settings: Settings, service_name: str, region: Optional[str] = None) -> Any:
    """Create a boto3 client honoring the configured profile and endpoint.

    Args:
        settings: CLI settings
        service_name: AWS service, e.g. 'ecr'
        region: Region override; defaults to settings.aws_region

    Returns:
        boto3 service client
    """
    session_kwargs = {}
    if settings.aws_profile:
        session_kwargs["profile_name"] = settings.aws_profile
    session = boto3.Session(**session_kwargs)

    client_kwargs = {"region_name": region or settings.aws_region}
    if settings.aws_endpoint_url:
        client_kwargs["endpoint_url"] = settings.aws_endpoint_url

    try:
        client = session.client(service_name, **client_kwargs)
    except Exception as e:
        logger.error(f"Error creating {service_name} client: {e}")
        raise
    logger.debug(f"Created {service_name} client for {client_kwargs['region_name']}")
    return client
