# ---------------------------------------------------------------------------- #

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yamale  # type: ignore

from csibm.shared.config import (
    DEFAULT_NAMESPACE,
    DRIVER_REGISTRAR_SIDECAR,
    LIVENESS_PROBE_SIDECAR,
)

BUILTIN_SIDECARS = (LIVENESS_PROBE_SIDECAR, DRIVER_REGISTRAR_SIDECAR)
"""Sidecars that are always deployed, with built-in images unless
overridden."""

# ---------------------------------------------------------------------------- #


@dataclass(frozen=True)
class Image:

    name: str
    tag: str
    registry: str
    pull_policy: Optional[str]
    """`None` leaves the pull policy to the cluster's default."""

    @staticmethod
    def from_obj(obj: Mapping[str, Any], default_registry: str) -> Image:
        return Image(
            name=obj["name"],
            tag=obj["tag"],
            registry=obj.get("registry") or default_registry,
            pull_policy=obj.get("pullPolicy"),
        )


@dataclass(frozen=True)
class Sidecar:
    name: str
    image: Image


@dataclass(frozen=True)
class NodeSpec:

    image: Image
    drive_mgr_image: Image

    sidecars: tuple[Sidecar, ...]
    """User overrides for the node sidecars, in the order they were given."""

    test_env: bool


# ---------------------------------------------------------------------------- #


@dataclass(frozen=True)
class Deployment:
    """
    The parts of a csi-baremetal Deployment object that installers care about.

    Instances are immutable, so a single one can be handed to several
    installers during the same reconciliation.
    """

    __SCHEMA = yamale.make_schema(
        content=(Path(__file__).parent / "deployment-schema.yaml").read_text()
    )

    name: str
    namespace: str
    global_registry: str
    node: NodeSpec

    @staticmethod
    def validate(obj: Any) -> None:
        """Raises ValueError listing every problem found in `obj`."""

        try:
            yamale.validate(
                schema=Deployment.__SCHEMA, data=[(obj, None)], strict=False
            )
        except yamale.YamaleError as e:
            assert len(e.results) == 1
            raise ValueError(
                "".join(f"\n  {msg}" for msg in e.results[0].errors)
            )

    @staticmethod
    def from_obj(obj: Any) -> Deployment:
        """Create a Deployment from a raw custom resource object, such as the
        body received by a kopf handler or loaded from a YAML file."""

        Deployment.validate(obj)

        spec = obj["spec"]
        registry = spec.get("globalRegistry") or ""
        node = spec["driver"]["node"]

        sidecars = tuple(
            Sidecar(
                name=sidecar["name"],
                image=Image.from_obj(sidecar["image"], registry),
            )
            for sidecar in node.get("sidecars") or []
        )

        deployment = Deployment(
            name=obj["metadata"]["name"],
            namespace=spec.get("namespace") or DEFAULT_NAMESPACE,
            global_registry=registry,
            node=NodeSpec(
                image=Image.from_obj(node["image"], registry),
                drive_mgr_image=Image.from_obj(
                    node["driveMgr"]["image"], registry
                ),
                sidecars=sidecars,
                test_env=bool(node.get("testEnv", False)),
            ),
        )

        deployment.__check_registries()

        return deployment

    def __check_registries(self) -> None:
        """Outside test environments every image is pulled from a registry, so
        each one must end up with a non-empty one."""

        if self.node.test_env:
            return

        registries = {
            "node": self.node.image.registry,
            "driveMgr": self.node.drive_mgr_image.registry,
        }

        for name in BUILTIN_SIDECARS:
            registries[f"sidecar {name}"] = next(
                (
                    s.image.registry
                    for s in self.node.sidecars
                    if s.name == name
                ),
                self.global_registry,
            )

        missing = [
            name for name, registry in registries.items() if not registry
        ]

        if missing:
            raise ValueError(
                "".join(
                    f"\n  {name}: no registry and no spec.globalRegistry"
                    for name in missing
                )
            )


# ---------------------------------------------------------------------------- #
