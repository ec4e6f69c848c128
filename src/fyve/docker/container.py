"""
In-place container updates.

Swaps a running container onto a new image while keeping its name, its
configuration and its network attachments. Every mutation made before the
new container is running is paired with an undo step, so a failure part way
through puts the old container back the way it was.
"""
import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from docker.errors import DockerException
from docker.errors import NotFound as DockerNotFound
from requests.exceptions import RequestException

from fyve.docker.compensation import CompensationStack
from fyve.docker.errors import (
    DeadlineExceeded,
    EngineError,
    NotFound,
    PostCommitError,
    RollbackError,
)
from fyve.docker.images.reference import ImageReference
from fyve.docker.images.registry import RegistryAuthenticator
from fyve.utils.decorators import log_operation, retry

logger = logging.getLogger(__name__)

OLD_CONTAINER_SUFFIX = "-old"

# Attachments fixed by HostConfig.NetworkMode; the engine refuses to
# disconnect or connect these
PINNED_NETWORKS = ("host", "none")

ENGINE_ERRORS = (DockerException, RequestException)


class ReplacementState(str, Enum):
    """Progress of a single container replacement"""
    INSPECTED = "inspected"
    QUIESCED = "quiesced"                        # old container stopped, renamed, detached
    CREATED = "created"                          # replacement exists, not yet running
    NETWORKS_RECONCILED = "networks_reconciled"  # replacement attached to every network
    STARTED = "started"
    COMMITTED = "committed"                      # no rollback from here on
    ROLLED_BACK = "rolled_back"


@dataclass
class NetworkAttachment:
    """One network a container is attached to, with its endpoint settings."""

    name: str
    network_id: str
    settings: Dict[str, Any] = field(default_factory=dict)
    container_id: str = ""

    def endpoint_config(self) -> Dict[str, Any]:
        """User-configurable part of the endpoint settings.

        Runtime-assigned fields (endpoint ID, gateway, MAC, assigned
        addresses) and the container's own short-ID alias are dropped.
        """
        config: Dict[str, Any] = {}

        ipam = {key: value for key, value in (self.settings.get("IPAMConfig") or {}).items() if value}
        if ipam:
            config["IPAMConfig"] = ipam

        short_id = self.container_id[:12]
        aliases = [alias for alias in self.settings.get("Aliases") or [] if alias != short_id]
        if aliases:
            config["Aliases"] = aliases

        if self.settings.get("Links"):
            config["Links"] = list(self.settings["Links"])
        if self.settings.get("DriverOpts"):
            config["DriverOpts"] = dict(self.settings["DriverOpts"])
        return config

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``APIClient.connect_container_to_network``."""
        config = self.endpoint_config()
        ipam = config.get("IPAMConfig", {})
        kwargs: Dict[str, Any] = {}
        if ipam.get("IPv4Address"):
            kwargs["ipv4_address"] = ipam["IPv4Address"]
        if ipam.get("IPv6Address"):
            kwargs["ipv6_address"] = ipam["IPv6Address"]
        if ipam.get("LinkLocalIPs"):
            kwargs["link_local_ips"] = list(ipam["LinkLocalIPs"])
        if config.get("Aliases"):
            kwargs["aliases"] = config["Aliases"]
        if config.get("Links"):
            # "container:alias" entries; the SDK wants {container: alias}
            links = {}
            for link in config["Links"]:
                target, _, alias = link.partition(":")
                links[target] = alias or None
            kwargs["links"] = links
        if config.get("DriverOpts"):
            kwargs["driver_opt"] = config["DriverOpts"]
        return kwargs


@dataclass
class ContainerSnapshot:
    """Everything needed to recreate an equivalent container."""

    id: str
    name: str
    config: Dict[str, Any]
    host_config: Dict[str, Any]
    networks: List[NetworkAttachment] = field(default_factory=list)

    @classmethod
    def from_inspect(cls, attrs: Dict[str, Any]) -> "ContainerSnapshot":
        """Build a snapshot from an engine inspect payload.

        Networks are ordered by name so the initial network is deterministic.
        """
        container_id = attrs["Id"]
        raw_networks = (attrs.get("NetworkSettings") or {}).get("Networks") or {}
        networks = [
            NetworkAttachment(
                name=name,
                network_id=settings.get("NetworkID") or name,
                settings=copy.deepcopy(settings),
                container_id=container_id,
            )
            for name, settings in sorted(raw_networks.items())
            if name not in PINNED_NETWORKS
        ]
        return cls(
            id=container_id,
            name=(attrs.get("Name") or "").lstrip("/"),
            config=copy.deepcopy(attrs.get("Config") or {}),
            host_config=copy.deepcopy(attrs.get("HostConfig") or {}),
            networks=networks,
        )

    @property
    def image(self) -> str:
        return self.config.get("Image", "")

    @property
    def initial_network(self) -> Optional[NetworkAttachment]:
        """The network attached at create time; the engine allows only one."""
        return self.networks[0] if self.networks else None

    def creation_config(self) -> Dict[str, Any]:
        """Body for the engine's container create call."""
        payload = dict(self.config)
        payload["HostConfig"] = self.host_config
        initial = self.initial_network
        if initial is not None:
            payload["NetworkingConfig"] = {
                "EndpointsConfig": {initial.name: initial.endpoint_config()}
            }
        return payload


@dataclass
class ReplacementResult:
    """Outcome of a committed replacement."""

    container: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)
    state: ReplacementState = ReplacementState.COMMITTED

    @property
    def id(self) -> str:
        return self.container.get("Id", "")


class ContainerService:
    """Replaces running containers through the engine's low-level API.

    Args:
        api: A ``docker.APIClient`` (or anything with the same methods)
        registry_auth: Provides pull credentials; None pulls anonymously
        stop_timeout: Seconds the engine waits before killing on stop
        default_timeout: Deadline in seconds applied when ``replace`` gets none
        cleanup_attempts: Attempts for post-commit old container removal and inspect
        cleanup_delay: First retry delay for post-commit steps
    """

    def __init__(
        self,
        api: Any,
        registry_auth: Optional[RegistryAuthenticator] = None,
        stop_timeout: Optional[int] = None,
        default_timeout: Optional[float] = None,
        cleanup_attempts: int = 3,
        cleanup_delay: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api = api
        self.registry_auth = registry_auth
        self.stop_timeout = stop_timeout
        self.default_timeout = default_timeout
        self.cleanup_attempts = cleanup_attempts
        self.cleanup_delay = cleanup_delay
        self.clock = clock
        self.sleep = sleep

    def inspect(self, container: str) -> ContainerSnapshot:
        """Read the current state of ``container`` (name or ID)."""
        try:
            attrs = self.api.inspect_container(container)
        except DockerNotFound as e:
            raise NotFound(f"container {container} not found") from e
        except ENGINE_ERRORS as e:
            raise EngineError(f"fetch container information error: {e}") from e
        return ContainerSnapshot.from_inspect(attrs)

    def pull(self, ref: ImageReference) -> None:
        """Pull ``ref``, reading the progress stream to the end.

        The selector follows ``full_name`` (tag first) so the pulled image
        is the one a container created from ``full_name`` runs.
        """
        auth_config = self.registry_auth.encoded_auth(ref) if self.registry_auth else None
        pull_kwargs: Dict[str, Any] = {"stream": True, "decode": True}
        if auth_config:
            pull_kwargs["auth_config"] = auth_config

        logger.debug(f"Pulling image {ref.full_name}")
        try:
            for event in self.api.pull(ref.name, tag=ref.tag or ref.digest, **pull_kwargs):
                if event.get("error"):
                    raise EngineError(f"pull image error {ref.full_name}: {event['error']}")
                if event.get("status"):
                    logger.debug(f"{ref.full_name}: {event['status']} {event.get('progress', '')}".rstrip())
        except ENGINE_ERRORS as e:
            raise EngineError(f"pull image error {ref.full_name}: {e}") from e

    @log_operation("container update")
    def replace(
        self,
        container: str,
        force_pull: bool = False,
        new_tag: str = "",
        timeout: Optional[float] = None,
    ) -> ReplacementResult:
        """
        Recreate ``container`` on a new image, keeping name, config and networks.

        Args:
            container: Name or ID of the running container
            force_pull: Pull the target image before touching the container
            new_tag: Tag to switch to; empty keeps the current image reference
            timeout: Deadline in seconds for reaching the commit point

        Returns:
            ReplacementResult with the inspected new container

        Raises:
            NotFound: The container does not exist
            InvalidReference: The current image or ``new_tag`` is malformed
            AuthError: Pull credentials could not be obtained
            EngineError: An engine call failed; ``rolled_back`` tells whether
                the old container was restored
            RollbackError: The old container could not be fully restored
            PostCommitError: The swap committed but the new container could
                not be inspected
        """
        timeout = timeout if timeout is not None else self.default_timeout
        deadline = self.clock() + timeout if timeout else None

        snapshot = self.inspect(container)

        ref = ImageReference.parse(snapshot.image)
        if new_tag:
            ref = ref.with_tag(new_tag)
        snapshot.config["Image"] = ref.full_name

        if force_pull:
            if deadline is not None and self.clock() >= deadline:
                raise DeadlineExceeded("deadline exceeded before pull image",
                                       state=ReplacementState.INSPECTED.value)
            self.pull(ref)

        return _Replacement(self, snapshot, deadline).run()


class _Replacement:
    """State of one replace call from quiesce to cleanup."""

    def __init__(self, service: ContainerService, snapshot: ContainerSnapshot, deadline: Optional[float]):
        self.service = service
        self.api = service.api
        self.snapshot = snapshot
        self.deadline = deadline
        self.stack = CompensationStack()
        self.state = ReplacementState.INSPECTED
        self.renamed = False
        self.detached: List[NetworkAttachment] = []
        self.new_container_id: Optional[str] = None

    @property
    def old_name(self) -> str:
        return f"{self.snapshot.name}{OLD_CONTAINER_SUFFIX}"

    def run(self) -> ReplacementResult:
        self.stack.arm()
        try:
            self.stack.push(self.restore_old_container)
            self._quiesce()
            self._create()
            self.stack.push(self.remove_new_container)
            self._connect_networks()
            self._start()
            self.stack.disarm()
            self.state = ReplacementState.COMMITTED
            logger.info(f"Container {self.snapshot.name} now runs {self.snapshot.image}")
        except Exception as e:
            self._rollback(e)
        except BaseException as e:
            # KeyboardInterrupt, SystemExit: restore, then let it through
            try:
                self.stack.unwind()
            except RollbackError as rollback_error:
                raise RollbackError(rollback_error.failures, cause=e) from e
            raise

        return self._cleanup()

    def _call(self, description: str, func: Callable, *args, **kwargs) -> Any:
        if self.deadline is not None and self.service.clock() >= self.deadline:
            raise DeadlineExceeded(f"deadline exceeded before {description}", state=self.state.value)
        try:
            return func(*args, **kwargs)
        except ENGINE_ERRORS as e:
            raise EngineError(f"{description} error: {e}", state=self.state.value) from e

    def _quiesce(self) -> None:
        snapshot = self.snapshot
        stop_kwargs = {}
        if self.service.stop_timeout is not None:
            stop_kwargs["timeout"] = self.service.stop_timeout

        logger.debug(f"Stopping container {snapshot.name}")
        self._call("stop container", self.api.stop, snapshot.id, **stop_kwargs)
        self.state = ReplacementState.QUIESCED

        logger.debug(f"Renaming container {snapshot.name} to {self.old_name}")
        self._call("rename container", self.api.rename, snapshot.id, self.old_name)
        self.renamed = True

        # Frees fixed addresses so the replacement can claim them
        for attachment in snapshot.networks:
            self._call(
                f"disconnect network {attachment.name} from old container",
                self.api.disconnect_container_from_network,
                snapshot.id,
                attachment.network_id,
                force=True,
            )
            self.detached.append(attachment)

    def _create(self) -> None:
        logger.debug(f"Creating new container {self.snapshot.name}")
        response = self._call(
            "create container",
            self.api.create_container_from_config,
            self.snapshot.creation_config(),
            name=self.snapshot.name,
        )
        self.new_container_id = response["Id"]
        for warning in response.get("Warnings") or []:
            logger.warning(f"Engine warning creating {self.snapshot.name}: {warning}")
        self.state = ReplacementState.CREATED

    def _connect_networks(self) -> None:
        # Only the initial network can be attached at creation, the rest follow here
        initial = self.snapshot.initial_network
        for attachment in self.snapshot.networks:
            if initial is not None and attachment.name == initial.name:
                continue
            logger.debug(f"Connecting network {attachment.name} to new container")
            self._call(
                f"connect network {attachment.name} to new container",
                self.api.connect_container_to_network,
                self.new_container_id,
                attachment.network_id,
                **attachment.connect_kwargs(),
            )
        self.state = ReplacementState.NETWORKS_RECONCILED

    def _start(self) -> None:
        logger.debug(f"Starting new container {self.snapshot.name}")
        self._call("start container", self.api.start, self.new_container_id)
        self.state = ReplacementState.STARTED

    def restore_old_container(self) -> None:
        """Undo the quiesce phase: rename back, reattach networks, start."""
        snapshot = self.snapshot
        logger.info(f"Restoring container {snapshot.name}")

        actions = []
        if self.renamed:
            actions.append(("rename", lambda: self.api.rename(snapshot.id, snapshot.name)))
        for attachment in self.detached:
            actions.append((
                f"reconnect network {attachment.name}",
                lambda a=attachment: self.api.connect_container_to_network(
                    snapshot.id, a.network_id, **a.connect_kwargs()
                ),
            ))
        actions.append(("start", lambda: self.api.start(snapshot.id)))
        _run_all(f"restore container {snapshot.name}", actions)

    def remove_new_container(self) -> None:
        """Stop and delete the half-built replacement."""
        new_id = self.new_container_id
        logger.info(f"Removing new container {new_id}")
        _run_all(f"remove new container {new_id}", [
            ("stop", lambda: self.api.stop(new_id)),
            ("remove", lambda: self.api.remove_container(new_id, force=True)),
        ])

    def _rollback(self, error: Exception) -> None:
        failed_state = self.state
        logger.error(f"Container update failed in state {failed_state.value}: {error}")
        try:
            self.stack.unwind()
        except RollbackError as rollback_error:
            raise RollbackError(rollback_error.failures, cause=error) from error
        self.state = ReplacementState.ROLLED_BACK

        if isinstance(error, EngineError):
            error.state = failed_state.value
            error.rolled_back = True
            raise error
        raise EngineError(str(error), state=failed_state.value, rolled_back=True) from error

    def _cleanup(self) -> ReplacementResult:
        warnings = []
        service = self.service
        with_retry = retry(
            max_attempts=service.cleanup_attempts,
            delay=service.cleanup_delay,
            exceptions=ENGINE_ERRORS,
            logger_name=__name__,
            sleep=service.sleep,
        )

        logger.debug(f"Removing old container {self.old_name}")
        try:
            with_retry(self.api.remove_container)(self.snapshot.id)
        except ENGINE_ERRORS as e:
            message = f"remove old container {self.old_name} error: {e}"
            logger.warning(message)
            warnings.append(message)

        try:
            container = with_retry(self.api.inspect_container)(self.new_container_id)
        except ENGINE_ERRORS as e:
            raise PostCommitError(
                f"fetch new container information error: {e}",
                container_id=self.new_container_id,
                state=self.state.value,
            ) from e

        return ReplacementResult(container=container, warnings=warnings, state=self.state)


def _run_all(description: str, actions) -> None:
    """Run every action even if some fail, then report all failures at once."""
    failures = []
    for name, action in actions:
        try:
            action()
        except ENGINE_ERRORS as e:
            logger.error(f"{description}: {name} failed: {e}")
            failures.append(f"{name}: {e}")
    if failures:
        raise EngineError(f"{description} failed: {'; '.join(failures)}")
