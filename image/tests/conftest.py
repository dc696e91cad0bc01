# ---------------------------------------------------------------------------- #

from __future__ import annotations

from collections.abc import Callable
from copy import deepcopy
from typing import Any

import pytest

import csibm.shared.kubernetes
from csibm.shared.deployment import Deployment
from fakes import FakeAppsV1Api

# ---------------------------------------------------------------------------- #


@pytest.fixture
def fake_apps_api(monkeypatch: pytest.MonkeyPatch) -> FakeAppsV1Api:

    api = FakeAppsV1Api()

    monkeypatch.setattr(
        csibm.shared.kubernetes, "AppsV1Api", lambda api_client: api
    )

    return api


# ---------------------------------------------------------------------------- #

DEPLOYMENT_OBJ: dict[str, Any] = {
    "apiVersion": "csi-baremetal.dell.com/v1",
    "kind": "Deployment",
    "metadata": {"name": "csi-baremetal"},
    "spec": {
        "namespace": "csi",
        "globalRegistry": "reg.example.com",
        "driver": {
            "node": {
                "image": {"name": "node", "tag": "1.2.3"},
                "driveMgr": {
                    "image": {
                        "name": "basemgr",
                        "tag": "1.2.3",
                        "pullPolicy": "IfNotPresent",
                    }
                },
                "sidecars": [],
                "testEnv": False,
            }
        },
    },
}


@pytest.fixture
def deployment_obj() -> dict[str, Any]:
    return deepcopy(DEPLOYMENT_OBJ)


@pytest.fixture
def make_deployment() -> Callable[..., Deployment]:
    """Returns a function that builds a Deployment from DEPLOYMENT_OBJ, with the
    given keyword arguments replacing fields of 'spec.driver.node'."""

    def make(**node_fields: Any) -> Deployment:
        obj = deepcopy(DEPLOYMENT_OBJ)
        obj["spec"]["driver"]["node"] |= node_fields
        return Deployment.from_obj(obj)

    return make


# ---------------------------------------------------------------------------- #
