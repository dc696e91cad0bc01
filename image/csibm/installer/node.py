# ---------------------------------------------------------------------------- #

from __future__ import annotations

from kubernetes_asyncio.client import (  # type: ignore
    ApiClient,
    V1ConfigMapVolumeSource,
    V1Container,
    V1ContainerPort,
    V1DaemonSet,
    V1DaemonSetSpec,
    V1EmptyDirVolumeSource,
    V1EnvVar,
    V1ExecAction,
    V1HostPathVolumeSource,
    V1HTTPGetAction,
    V1LabelSelector,
    V1Lifecycle,
    V1LifecycleHandler,
    V1ObjectMeta,
    V1PodSpec,
    V1PodTemplateSpec,
    V1Probe,
    V1SecurityContext,
    V1Volume,
    V1VolumeMount,
)

from csibm.installer.common import (
    InstallOutcome,
    ensure_daemon_set,
    field_env,
    resolve_image,
    resolve_sidecar,
)
from csibm.shared.config import (
    CSI_NAME,
    CSI_PATH_VOLUME,
    CSI_SOCKET_DIR_VOLUME,
    DRIVE_CONFIG_VOLUME,
    DRIVER_REGISTRAR_DEFAULT_TAG,
    DRIVER_REGISTRAR_SIDECAR,
    HOST_DEV_VOLUME,
    HOST_HOME_VOLUME,
    HOST_ROOT_VOLUME,
    HOST_RUN_LOCK_VOLUME,
    HOST_RUN_LVM_VOLUME,
    HOST_RUN_UDEV_VOLUME,
    HOST_SYS_VOLUME,
    LIVENESS_PROBE_DEFAULT_TAG,
    LIVENESS_PROBE_SIDECAR,
    LOGS_VOLUME,
    LOOPBACK_MANAGER_CONFIG_NAME,
    MOUNTPOINT_DIR_VOLUME,
    NODE_NAME,
    NODE_SERVICE_ACCOUNT_NAME,
    REGISTRATION_DIR_VOLUME,
    SIDECAR_DEFAULT_PULL_POLICY,
    OperatorConfig,
)
from csibm.shared.deployment import Deployment
from csibm.shared.kubernetes import ObjectRef
from csibm.shared.util import format_bool

# ---------------------------------------------------------------------------- #


class NodeInstaller:
    """Installs the daemon set that runs the CSI node plugin and the drive
    manager on every node."""

    __api_client: ApiClient
    __config: OperatorConfig

    def __init__(self, api_client: ApiClient, config: OperatorConfig) -> None:
        self.__api_client = api_client
        self.__config = config

    async def update(self, deployment: Deployment) -> InstallOutcome:
        """
        Create the node daemon set if it doesn't exist yet.

        Never modifies an existing daemon set, so changes to the deployment
        made after the daemon set was created are not applied.

        The daemon set template is only built if the daemon set is missing.

        Raises QueryError or CreateError if the corresponding API call fails.
        """

        return await ensure_daemon_set(
            self.__api_client,
            ObjectRef(name=NODE_NAME, namespace=deployment.namespace),
            lambda: build_daemon_set(deployment, self.__config),
        )


# ---------------------------------------------------------------------------- #


def build_daemon_set(
    deployment: Deployment, config: OperatorConfig
) -> V1DaemonSet:

    return V1DaemonSet(
        api_version="apps/v1",
        kind="DaemonSet",
        metadata=V1ObjectMeta(name=NODE_NAME, namespace=deployment.namespace),
        spec=V1DaemonSetSpec(
            selector=V1LabelSelector(match_labels={"app": NODE_NAME}),
            template=V1PodTemplateSpec(
                metadata=V1ObjectMeta(
                    labels={
                        "app": NODE_NAME,
                        "app.kubernetes.io/name": CSI_NAME,
                    },
                    # integration with monitoring
                    annotations={
                        "prometheus.io/scrape": "true",
                        "prometheus.io/port": str(config.metrics_port),
                        "prometheus.io/path": config.metrics_path,
                    },
                ),
                spec=V1PodSpec(
                    volumes=build_volumes(),
                    containers=build_containers(deployment, config),
                    termination_grace_period_seconds=int(
                        config.termination_grace_period.total_seconds()
                    ),
                    node_selector={},
                    service_account_name=NODE_SERVICE_ACCOUNT_NAME,
                    host_ipc=True,
                ),
            ),
        ),
    )


# ---------------------------------------------------------------------------- #


def build_volumes() -> list[V1Volume]:
    def host_path(name: str, path: str, kind: str = "Directory") -> V1Volume:
        return V1Volume(
            name=name, host_path=V1HostPathVolumeSource(path=path, type=kind)
        )

    return [
        V1Volume(name=LOGS_VOLUME, empty_dir=V1EmptyDirVolumeSource()),
        host_path(HOST_DEV_VOLUME, "/dev"),
        host_path(HOST_HOME_VOLUME, "/home"),
        host_path(HOST_SYS_VOLUME, "/sys"),
        host_path(HOST_ROOT_VOLUME, "/"),
        host_path(HOST_RUN_UDEV_VOLUME, "/run/udev"),
        host_path(HOST_RUN_LVM_VOLUME, "/run/lvm"),
        host_path(HOST_RUN_LOCK_VOLUME, "/run/lock"),
        host_path(
            CSI_SOCKET_DIR_VOLUME,
            f"/var/lib/kubelet/plugins/{CSI_NAME}",
            "DirectoryOrCreate",
        ),
        host_path(
            REGISTRATION_DIR_VOLUME,
            "/var/lib/kubelet/plugins_registry/",
            "DirectoryOrCreate",
        ),
        host_path(MOUNTPOINT_DIR_VOLUME, "/var/lib/kubelet/pods"),
        host_path(
            CSI_PATH_VOLUME, "/var/lib/kubelet/plugins/kubernetes.io/csi"
        ),
        # the drive manager runs without this config map unless it's created
        V1Volume(
            name=DRIVE_CONFIG_VOLUME,
            config_map=V1ConfigMapVolumeSource(
                name=LOOPBACK_MANAGER_CONFIG_NAME, optional=True
            ),
        ),
    ]


# ---------------------------------------------------------------------------- #


def build_containers(
    deployment: Deployment, config: OperatorConfig
) -> list[V1Container]:
    """Always returns, in order: the liveness probe sidecar, the driver
    registrar sidecar, the node plugin, and the drive manager."""

    return [
        _build_liveness_probe_container(deployment),
        _build_driver_registrar_container(deployment),
        _build_node_container(deployment, config),
        _build_drive_manager_container(deployment, config),
    ]


def _build_liveness_probe_container(deployment: Deployment) -> V1Container:

    sidecar = resolve_sidecar(
        overrides=deployment.node.sidecars,
        name=LIVENESS_PROBE_SIDECAR,
        default_registry=deployment.global_registry,
        default_tag=LIVENESS_PROBE_DEFAULT_TAG,
        default_pull_policy=SIDECAR_DEFAULT_PULL_POLICY,
    )

    return V1Container(
        name="liveness-probe",
        image=resolve_image(sidecar.image, deployment.node.test_env),
        image_pull_policy=sidecar.image.pull_policy,
        args=["--csi-address=/csi/csi.sock"],
        volume_mounts=[
            V1VolumeMount(name=CSI_SOCKET_DIR_VOLUME, mount_path="/csi"),
        ],
    )


def _build_driver_registrar_container(deployment: Deployment) -> V1Container:

    sidecar = resolve_sidecar(
        overrides=deployment.node.sidecars,
        name=DRIVER_REGISTRAR_SIDECAR,
        default_registry=deployment.global_registry,
        default_tag=DRIVER_REGISTRAR_DEFAULT_TAG,
        default_pull_policy=SIDECAR_DEFAULT_PULL_POLICY,
    )

    # Runs inside the container on termination. The kubelet ignores its
    # failure, and so do we.

    cleanup_command = (
        f"rm -rf /registration/{CSI_NAME} /registration/{CSI_NAME}-reg.sock"
    )

    return V1Container(
        name="csi-node-driver-registrar",
        image=resolve_image(sidecar.image, deployment.node.test_env),
        image_pull_policy=sidecar.image.pull_policy,
        args=[
            "--v=5",
            "--csi-address=$(ADDRESS)",
            "--kubelet-registration-path=$(DRIVER_REG_SOCK_PATH)",
        ],
        lifecycle=V1Lifecycle(
            pre_stop=V1LifecycleHandler(
                _exec=V1ExecAction(command=["/bin/sh", "-c", cleanup_command])
            )
        ),
        env=[
            V1EnvVar(name="ADDRESS", value="/csi/csi.sock"),
            V1EnvVar(
                name="DRIVER_REG_SOCK_PATH",
                value=f"/var/lib/kubelet/plugins/{CSI_NAME}/csi.sock",
            ),
            field_env("KUBE_NODE_NAME", "spec.nodeName"),
        ],
        volume_mounts=[
            V1VolumeMount(name=CSI_SOCKET_DIR_VOLUME, mount_path="/csi"),
            V1VolumeMount(
                name=REGISTRATION_DIR_VOLUME, mount_path="/registration"
            ),
        ],
    )


def _build_node_container(
    deployment: Deployment, config: OperatorConfig
) -> V1Container:

    image = deployment.node.image

    return V1Container(
        name="node",
        image=resolve_image(image, deployment.node.test_env),
        image_pull_policy=image.pull_policy,
        args=[
            "--csiendpoint=$(CSI_ENDPOINT)",
            "--nodename=$(KUBE_NODE_NAME)",
            "--namespace=$(NAMESPACE)",
            "--extender=true",
            f"--usenodeannotation={format_bool(config.use_node_annotation)}",
            "--loglevel=info",
            f"--metrics-address=:{config.metrics_port}",
            f"--metrics-path={config.metrics_path}",
            f"--drivemgrendpoint={config.drive_manager_endpoint}",
        ],
        ports=[
            V1ContainerPort(
                name=config.liveness_port_name,
                container_port=config.liveness_port,
                protocol="TCP",
            ),
            V1ContainerPort(
                name="metrics",
                container_port=config.metrics_port,
                protocol="TCP",
            ),
        ],
        # node initialization can take a while, so give it 5 minutes
        liveness_probe=V1Probe(
            http_get=V1HTTPGetAction(
                path="/healthz", port=config.liveness_port_name
            ),
            initial_delay_seconds=300,
            timeout_seconds=3,
            period_seconds=10,
            failure_threshold=5,
        ),
        readiness_probe=V1Probe(
            _exec=V1ExecAction(command=["/health_probe", "-addr=:9999"]),
            initial_delay_seconds=3,
            period_seconds=3,
            success_threshold=3,
            failure_threshold=100,
        ),
        env=[
            V1EnvVar(name="CSI_ENDPOINT", value="unix:///csi/csi.sock"),
            V1EnvVar(name="LOG_FORMAT", value="text"),
            field_env("KUBE_NODE_NAME", "spec.nodeName"),
            field_env("MY_POD_IP", "status.podIP", api_version=None),
            field_env("NAMESPACE", "metadata.namespace"),
        ],
        security_context=V1SecurityContext(privileged=True),
        volume_mounts=[
            V1VolumeMount(name=LOGS_VOLUME, mount_path="/var/log"),
            V1VolumeMount(name=HOST_DEV_VOLUME, mount_path="/dev"),
            V1VolumeMount(name=HOST_SYS_VOLUME, mount_path="/sys"),
            V1VolumeMount(name=HOST_RUN_UDEV_VOLUME, mount_path="/run/udev"),
            V1VolumeMount(name=HOST_RUN_LVM_VOLUME, mount_path="/run/lvm"),
            V1VolumeMount(name=HOST_RUN_LOCK_VOLUME, mount_path="/run/lock"),
            V1VolumeMount(name=CSI_SOCKET_DIR_VOLUME, mount_path="/csi"),
            V1VolumeMount(
                name=MOUNTPOINT_DIR_VOLUME,
                mount_path="/var/lib/kubelet/pods",
                mount_propagation="Bidirectional",
            ),
            V1VolumeMount(
                name=CSI_PATH_VOLUME,
                mount_path="/var/lib/kubelet/plugins/kubernetes.io/csi",
                mount_propagation="Bidirectional",
            ),
            V1VolumeMount(
                name=HOST_ROOT_VOLUME,
                mount_path="/hostroot",
                mount_propagation="Bidirectional",
            ),
        ],
    )


def _build_drive_manager_container(
    deployment: Deployment, config: OperatorConfig
) -> V1Container:

    image = deployment.node.drive_mgr_image

    return V1Container(
        name="drivemgr",
        image=resolve_image(image, deployment.node.test_env),
        image_pull_policy=image.pull_policy,
        args=[
            "--loglevel=info",
            f"--drivemgrendpoint={config.drive_manager_endpoint}",
            f"--usenodeannotation={format_bool(config.use_node_annotation)}",
        ],
        env=[
            V1EnvVar(name="LOG_FORMAT", value="text"),
            field_env("KUBE_NODE_NAME", "spec.nodeName"),
        ],
        security_context=V1SecurityContext(privileged=True),
        volume_mounts=[
            V1VolumeMount(name=HOST_DEV_VOLUME, mount_path="/dev"),
            V1VolumeMount(name=HOST_HOME_VOLUME, mount_path="/host/home"),
            V1VolumeMount(name=DRIVE_CONFIG_VOLUME, mount_path="/etc/config"),
        ],
    )


# ---------------------------------------------------------------------------- #
