# ---------------------------------------------------------------------------- #

from __future__ import annotations

from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional

from kubernetes_asyncio.client import (  # type: ignore
    ApiClient,
    ApiException,
    AppsV1Api,
    V1DaemonSet,
)

# ---------------------------------------------------------------------------- #


@dataclass(frozen=True)
class ObjectRef:
    name: str
    namespace: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


# ---------------------------------------------------------------------------- #


async def read_daemon_set_opt(
    api_client: ApiClient, name: str, namespace: str
) -> Optional[V1DaemonSet]:
    """Returns `None` if no such daemon set exists. Any other failure is
    propagated as an `ApiException`."""

    try:

        return await AppsV1Api(api_client).read_namespaced_daemon_set(
            name=name, namespace=namespace
        )

    except ApiException as e:

        if e.status == HTTPStatus.NOT_FOUND:
            return None  # daemon set doesn't exist
        else:
            raise  # some other error occurred, reraise exception


async def create_daemon_set(
    api_client: ApiClient, daemon_set: V1DaemonSet
) -> V1DaemonSet:
    """Fails with an `ApiException` if the daemon set already exists (409
    CONFLICT) or is rejected by the API server."""

    return await AppsV1Api(api_client).create_namespaced_daemon_set(
        namespace=daemon_set.metadata.namespace, body=daemon_set
    )


# ---------------------------------------------------------------------------- #
