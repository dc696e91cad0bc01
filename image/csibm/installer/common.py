# ---------------------------------------------------------------------------- #

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import Enum, unique
from typing import Optional

from kubernetes_asyncio.client import (  # type: ignore
    ApiClient,
    ApiException,
    V1DaemonSet,
    V1EnvVar,
    V1EnvVarSource,
    V1ObjectFieldSelector,
)

from csibm.shared.deployment import Image, Sidecar
from csibm.shared.kubernetes import (
    ObjectRef,
    create_daemon_set,
    read_daemon_set_opt,
)
from csibm.shared.util import log

# ---------------------------------------------------------------------------- #


def resolve_image(image: Image, test_env: bool) -> str:
    """In test environments images are preloaded on the nodes, so the registry
    is left out."""

    if test_env:
        return f"{image.name}:{image.tag}"
    else:
        return f"{image.registry}/{image.name}:{image.tag}"


def resolve_sidecar(
    overrides: Iterable[Sidecar],
    name: str,
    default_registry: str,
    default_tag: str,
    default_pull_policy: str,
) -> Sidecar:
    """
    Return the first override named `name`, or the built-in sidecar if there is
    none.

    The built-in sidecar's image has the same name as the sidecar itself.
    """

    for sidecar in overrides:
        if sidecar.name == name:
            return sidecar

    return Sidecar(
        name=name,
        image=Image(
            name=name,
            tag=default_tag,
            registry=default_registry,
            pull_policy=default_pull_policy,
        ),
    )


def field_env(
    name: str, field_path: str, *, api_version: Optional[str] = "v1"
) -> V1EnvVar:
    """An environment variable that the kubelet fills in from the pod's own
    fields when the container starts."""

    return V1EnvVar(
        name=name,
        value_from=V1EnvVarSource(
            field_ref=V1ObjectFieldSelector(
                api_version=api_version, field_path=field_path
            )
        ),
    )


# ---------------------------------------------------------------------------- #


class InstallError(Exception):

    operation: str
    name: str
    namespace: str
    cause: ApiException

    def __init__(
        self, operation: str, ref: ObjectRef, cause: ApiException
    ) -> None:
        super().__init__(
            f"Failed to {operation} {ref}: {cause.status} {cause.reason}"
        )
        self.operation = operation
        self.name = ref.name
        self.namespace = ref.namespace
        self.cause = cause


class QueryError(InstallError):
    """Checking whether the object exists failed for a reason other than it not
    existing."""


class CreateError(InstallError):
    """The API server rejected the object, e.g., because one with the same name
    already exists."""


@unique
class InstallOutcome(Enum):
    ALREADY_DEPLOYED = "AlreadyDeployed"
    CREATED = "Created"


async def ensure_daemon_set(
    api_client: ApiClient, ref: ObjectRef, build: Callable[[], V1DaemonSet]
) -> InstallOutcome:
    """
    Create the daemon set `ref` unless it already exists. `build` is only
    called once the daemon set is known to be missing, and must return an
    object with the same name and namespace as `ref`. An existing daemon set is
    left as is, even if it differs from what `build` would return.

    Not safe against concurrent calls for the same daemon set: both may find
    it missing, in which case the second creation fails with a CreateError.
    """

    try:
        existing = await read_daemon_set_opt(
            api_client, name=ref.name, namespace=ref.namespace
        )
    except ApiException as e:
        log(f"Failed to get daemon set {ref}: {e.status} {e.reason}")
        raise QueryError("get daemon set", ref, e) from e

    if existing is not None:
        log(f"Daemon set {ref} already deployed")
        return InstallOutcome.ALREADY_DEPLOYED

    daemon_set = build()

    assert daemon_set.metadata.name == ref.name
    assert daemon_set.metadata.namespace == ref.namespace

    try:
        await create_daemon_set(api_client, daemon_set)
    except ApiException as e:
        log(f"Failed to create daemon set {ref}: {e.status} {e.reason}")
        raise CreateError("create daemon set", ref, e) from e

    log(f"Daemon set {ref} created successfully")
    return InstallOutcome.CREATED


# ---------------------------------------------------------------------------- #
