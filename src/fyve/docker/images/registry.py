"""
Registry credentials for image pulls.

Only Amazon ECR registries need credentials; every other registry is pulled
anonymously (or with whatever the engine host already has configured).
"""
import base64
import binascii
import logging
import re
from typing import Any, Callable, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from fyve.docker.errors import AuthError
from fyve.docker.images.reference import ImageReference

logger = logging.getLogger(__name__)

# <account>.dkr.ecr[-fips].<region>.amazonaws.com[.cn]
ECR_DOMAIN_RE = re.compile(
    r"^(?P<registry_id>\d{12})\.dkr\.ecr(?:-fips)?\.(?P<region>[a-z0-9-]+)\.amazonaws\.com(?:\.cn)?$"
)


def parse_ecr_domain(domain: str) -> Optional[Dict[str, str]]:
    """Return registry id and region for an ECR domain, None for anything else."""
    match = ECR_DOMAIN_RE.match(domain or "")
    if not match:
        return None
    return {"registry_id": match.group("registry_id"), "region": match.group("region")}


class RegistryAuthenticator:
    """Obtains short-lived pull credentials from ECR.

    Args:
        client_factory: Callable taking a region name and returning a boto3
            ECR client for that region
    """

    def __init__(self, client_factory: Callable[[str], Any]):
        self._client_factory = client_factory
        self._clients: Dict[str, Any] = {}

    def _client(self, region: str) -> Any:
        if region not in self._clients:
            self._clients[region] = self._client_factory(region)
        return self._clients[region]

    def encoded_auth(self, ref: ImageReference) -> Optional[Dict[str, str]]:
        """
        Build the credential envelope used to pull ``ref``.

        Args:
            ref: Image about to be pulled

        Returns:
            ``{"username", "password", "serveraddress"}`` for ECR images, or
            None when the registry is not ECR (anonymous pull)

        Raises:
            AuthError: If the token request fails or the token is malformed
        """
        registry = parse_ecr_domain(ref.domain)
        if registry is None:
            logger.debug(f"No managed registry credentials needed for {ref.domain}")
            return None

        logger.debug(f"Requesting ECR authorization token for {ref.domain}")
        try:
            response = self._client(registry["region"]).get_authorization_token(
                registryIds=[registry["registry_id"]]
            )
        except (ClientError, BotoCoreError) as e:
            raise AuthError(f"get ECR authorization token for {ref.domain} failed: {e}") from e

        auth_data = response.get("authorizationData") or []
        if not auth_data:
            raise AuthError("no authorization data returned")

        token = auth_data[0].get("authorizationToken")
        if not token:
            raise AuthError("authorization data has no token")

        try:
            decoded = base64.b64decode(token, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise AuthError(f"decode authorization token failed: {e}") from e

        username, separator, password = decoded.partition(":")
        if not separator or not username or not password:
            raise AuthError("invalid token format")

        return {
            "username": username,
            "password": password,
            "serveraddress": auth_data[0].get("proxyEndpoint") or f"https://{ref.domain}",
        }
