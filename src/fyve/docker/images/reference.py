"""
Container image references.

Parses image names the way the Docker engine does, so that a reference read
back from a container's configuration can be retagged and pulled again:

    nginx                          -> docker.io/library/nginx:latest
    repo/app:v1                    -> docker.io/repo/app:v1
    localhost:5000/app             -> localhost:5000/app:latest
    123456789012.dkr.ecr.us-east-1.amazonaws.com/web@sha256:<hex>
"""
import re
from dataclasses import dataclass, replace
from typing import Optional

from fyve.docker.errors import InvalidReference

DEFAULT_DOMAIN = "docker.io"
LEGACY_DEFAULT_DOMAIN = "index.docker.io"
OFFICIAL_REPO_PREFIX = "library/"
DEFAULT_TAG = "latest"
NAME_TOTAL_LENGTH_MAX = 255

_ALPHANUMERIC = r"[a-z0-9]+"
_SEPARATOR = r"(?:[._]|__|[-]+)"
_PATH_COMPONENT = rf"{_ALPHANUMERIC}(?:{_SEPARATOR}{_ALPHANUMERIC})*"
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_IPV6 = r"\[(?:[a-fA-F0-9:]+)\]"
_HOST = rf"(?:{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*|{_IPV6})"
_DOMAIN = rf"{_HOST}(?::[0-9]+)?"
_TAG = r"[\w][\w.-]{0,127}"
_DIGEST = r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}"
_REMOTE_NAME = rf"{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"

REFERENCE_RE = re.compile(
    rf"^(?P<name>(?:(?P<domain>{_DOMAIN})/)?(?P<path>{_REMOTE_NAME}))"
    rf"(?::(?P<tag>{_TAG}))?(?:@(?P<digest>{_DIGEST}))?$"
)
TAG_RE = re.compile(rf"^{_TAG}$")
DIGEST_RE = re.compile(rf"^{_DIGEST}$")
IDENTIFIER_RE = re.compile(r"^[a-f0-9]{64}$")

# Encoded length per registered digest algorithm, lowercase hex only
DIGEST_ALGORITHMS = {
    "sha256": 64,
    "sha384": 96,
    "sha512": 128,
}


def validate_digest(digest: str) -> str:
    """Check a digest string such as ``sha256:<hex>``.

    Args:
        digest: Digest to validate

    Returns:
        The digest unchanged

    Raises:
        InvalidReference: If the digest is malformed or uses an unsupported algorithm
    """
    if not digest or not DIGEST_RE.match(digest):
        raise InvalidReference(f"invalid digest format: {digest!r}")

    algorithm, encoded = digest.split(":", 1)
    expected_length = DIGEST_ALGORITHMS.get(algorithm)
    if expected_length is None:
        raise InvalidReference(f"unsupported digest algorithm: {algorithm}")
    if len(encoded) != expected_length or not re.match(r"^[a-f0-9]+$", encoded):
        raise InvalidReference(f"invalid {algorithm} digest: {digest!r}")
    return digest


def _split_domain(name: str):
    """Split a raw name into (domain, remainder) applying Docker Hub defaults."""
    index = name.find("/")
    first = name[:index] if index != -1 else ""
    if index == -1 or (
        not any(ch in first for ch in ".:")
        and first != "localhost"
        and first.lower() == first
    ):
        domain, remainder = DEFAULT_DOMAIN, name
    else:
        domain, remainder = first, name[index + 1:]

    if domain == LEGACY_DEFAULT_DOMAIN:
        domain = DEFAULT_DOMAIN
    if domain == DEFAULT_DOMAIN and "/" not in remainder:
        remainder = OFFICIAL_REPO_PREFIX + remainder
    return domain, remainder


@dataclass(frozen=True)
class ImageReference:
    """
    Normalized container image reference.

    Exactly one of ``tag`` and ``digest`` selects the image for
    ``full_name``; the tag wins when a parsed name carried both.
    """

    domain: str
    """Registry host, e.g. 'docker.io' or '<account>.dkr.ecr.<region>.amazonaws.com'."""

    path: str
    """Repository path without domain, tag or digest, e.g. 'library/nginx'."""

    tag: str = ""
    digest: str = ""

    @classmethod
    def parse(cls, name: str) -> "ImageReference":
        """
        Parse and normalize an image name.

        Bare names get the default registry and the official ``library/``
        namespace, and a ``latest`` tag is added when neither a tag nor a
        digest is present.

        Args:
            name: Raw image name as found in a container configuration

        Returns:
            Normalized ImageReference

        Raises:
            InvalidReference: If the name cannot be decomposed
        """
        if not name:
            raise InvalidReference("invalid reference format: empty image name")
        if IDENTIFIER_RE.match(name):
            raise InvalidReference(
                f"invalid repository name ({name}), cannot specify 64-byte hexadecimal strings"
            )

        domain, remainder = _split_domain(name)
        remote_name = remainder.split(":", 1)[0]
        if remote_name.lower() != remote_name:
            raise InvalidReference(
                f"invalid reference format: repository name ({remote_name}) must be lowercase"
            )

        match = REFERENCE_RE.match(f"{domain}/{remainder}")
        if not match or match.group("domain") is None:
            raise InvalidReference(f"invalid reference format: {name!r}")
        if len(match.group("name")) > NAME_TOTAL_LENGTH_MAX:
            raise InvalidReference(
                f"repository name must not be more than {NAME_TOTAL_LENGTH_MAX} characters"
            )

        tag = match.group("tag") or ""
        digest = match.group("digest") or ""
        if digest:
            validate_digest(digest)
        if not tag and not digest:
            tag = DEFAULT_TAG

        return cls(domain=match.group("domain"), path=match.group("path"), tag=tag, digest=digest)

    @property
    def name(self) -> str:
        """Repository name without tag or digest."""
        return f"{self.domain}/{self.path}"

    @property
    def full_name(self) -> str:
        """Name plus the active selector, tag first."""
        if self.tag:
            return f"{self.name}:{self.tag}"
        return f"{self.name}@{self.digest}"

    @property
    def reference(self) -> str:
        """The digest if present, otherwise the tag."""
        return self.digest or self.tag

    def with_tag(self, tag: str) -> "ImageReference":
        """Return a copy selecting ``tag``; any digest is dropped."""
        if not tag or not TAG_RE.match(tag):
            raise InvalidReference(f"invalid tag format: {tag!r}")
        return replace(self, tag=tag, digest="")

    def with_digest(self, digest: str) -> "ImageReference":
        """Return a copy selecting ``digest``; any tag is dropped."""
        validate_digest(digest)
        return replace(self, tag="", digest=digest)

    def __str__(self) -> str:
        result = self.name
        if self.tag:
            result = f"{result}:{self.tag}"
        if self.digest:
            result = f"{result}@{self.digest}"
        return result
