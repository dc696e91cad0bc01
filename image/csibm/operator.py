# ---------------------------------------------------------------------------- #

from __future__ import annotations

from typing import Any, Optional

import kopf
from kubernetes_asyncio.client import ApiClient  # type: ignore

from csibm.installer.common import InstallError
from csibm.installer.node import NodeInstaller
from csibm.shared.config import (
    DEPLOYMENT_GROUP,
    DEPLOYMENT_PLURAL,
    DEPLOYMENT_VERSION,
    HANDLER_RETRY_DELAY,
    OperatorConfig,
)
from csibm.shared.deployment import Deployment

# ---------------------------------------------------------------------------- #


def run(config: OperatorConfig) -> None:

    # create Kubernetes API client object

    api_client = ApiClient()

    # define handlers

    registry = kopf.OperatorRegistry()

    _define_operator_handlers(registry, api_client, config)

    # run kopf

    kopf.configure()
    kopf.run(registry=registry, standalone=True, clusterwide=True)


# ---------------------------------------------------------------------------- #


def _define_operator_handlers(
    registry: kopf.OperatorRegistry,
    api_client: ApiClient,
    config: OperatorConfig,
) -> None:

    node_installer = NodeInstaller(api_client, config)

    @kopf.on.login(registry=registry)
    async def on_login(**kwargs: Any) -> Optional[kopf.ConnectionInfo]:
        return kopf.login_via_client(**kwargs)

    @kopf.on.startup(registry=registry)
    async def on_startup(settings: kopf.OperatorSettings, **_: object) -> None:

        # don't create events

        settings.posting.enabled = False

    @kopf.on.resume(
        DEPLOYMENT_GROUP,
        DEPLOYMENT_VERSION,
        DEPLOYMENT_PLURAL,
        registry=registry,
    )
    @kopf.on.create(
        DEPLOYMENT_GROUP,
        DEPLOYMENT_VERSION,
        DEPLOYMENT_PLURAL,
        registry=registry,
    )
    @kopf.on.update(
        DEPLOYMENT_GROUP,
        DEPLOYMENT_VERSION,
        DEPLOYMENT_PLURAL,
        registry=registry,
    )
    async def on_deployment(
        body: kopf.Body, logger: kopf.Logger, **_: object
    ) -> str:

        try:
            deployment = Deployment.from_obj(dict(body))
        except ValueError as e:
            raise kopf.PermanentError(f"Invalid deployment:{e}")

        # installers don't retry, so we do it here

        try:
            outcome = await node_installer.update(deployment)
        except InstallError as e:
            raise kopf.TemporaryError(
                str(e), delay=HANDLER_RETRY_DELAY.total_seconds()
            )

        logger.info(f"Node daemon set: {outcome.value}")

        return outcome.value


# ---------------------------------------------------------------------------- #
