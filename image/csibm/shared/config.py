# ---------------------------------------------------------------------------- #

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

# ---------------------------------------------------------------------------- #

CSI_NAME = "csi-baremetal"
"""Name of the CSI driver. Also used as a prefix for the names of the objects
that the operator creates."""

DOMAIN = "csi-baremetal.dell.com"
"""Used for the deployment CRD group."""

DEPLOYMENT_GROUP = DOMAIN
DEPLOYMENT_VERSION = "v1"
DEPLOYMENT_PLURAL = "deployments"

DEFAULT_NAMESPACE = "default"
"""Namespace that components are installed into when a deployment doesn't
specify one."""

HANDLER_RETRY_DELAY = timedelta(seconds=5)
"""Amount of time to wait before the operator retries a deployment handler
after an installation failure."""

# ---------------------------------------------------------------------------- #
# node daemon set

NODE_NAME = f"{CSI_NAME}-node"
NODE_SERVICE_ACCOUNT_NAME = "csi-node-sa"
LOOPBACK_MANAGER_CONFIG_NAME = "loopback-config"

LOGS_VOLUME = "logs"
CSI_SOCKET_DIR_VOLUME = "csi-socket-dir"
REGISTRATION_DIR_VOLUME = "registration-dir"
HOST_DEV_VOLUME = "host-dev"
HOST_HOME_VOLUME = "host-home"
HOST_SYS_VOLUME = "host-sys"
HOST_ROOT_VOLUME = "host-root"
HOST_RUN_UDEV_VOLUME = "host-run-udev"
HOST_RUN_LVM_VOLUME = "host-run-lvm"
HOST_RUN_LOCK_VOLUME = "host-run-lock"
MOUNTPOINT_DIR_VOLUME = "mountpoint-dir"
CSI_PATH_VOLUME = "csi-path"
DRIVE_CONFIG_VOLUME = "drive-config"

LIVENESS_PROBE_SIDECAR = "liveness-probe"
DRIVER_REGISTRAR_SIDECAR = "csi-node-driver-registrar"

LIVENESS_PROBE_DEFAULT_TAG = "v2.1.0"
DRIVER_REGISTRAR_DEFAULT_TAG = "v1.0.1-gke.0"
SIDECAR_DEFAULT_PULL_POLICY = "Always"

# ---------------------------------------------------------------------------- #


@dataclass(frozen=True)
class OperatorConfig:
    """Process-wide settings shared by all installers. Read-only once the
    operator starts."""

    metrics_port: int = 8787
    metrics_path: str = "/metrics"

    liveness_port_name: str = "liveness-port"
    liveness_port: int = 9808

    termination_grace_period: timedelta = timedelta(seconds=10)

    use_node_annotation: bool = False
    """Whether the driver and drive manager identify nodes by annotation
    instead of by name."""

    drive_manager_port: int = 8888

    @property
    def drive_manager_endpoint(self) -> str:
        return f"tcp://localhost:{self.drive_manager_port}"


# ---------------------------------------------------------------------------- #
