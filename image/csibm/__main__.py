# ---------------------------------------------------------------------------- #

from __future__ import annotations

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from pathlib import Path

import yaml
from kubernetes_asyncio.client import ApiClient  # type: ignore
from kubernetes_asyncio.config import load_incluster_config  # type: ignore

import csibm.operator
from csibm.installer.node import build_daemon_set
from csibm.shared.config import OperatorConfig
from csibm.shared.deployment import Deployment

# ---------------------------------------------------------------------------- #


def main() -> None:
    """
    Usage:

        python -m csibm operator [--use-node-annotation] [--metrics-port <port>]
                                 [--drive-manager-port <port>]
        python -m csibm render <deployment.yaml>
    """

    args = _parse_args()

    if args.mode == "operator":

        load_incluster_config()

        csibm.operator.run(config=_config_from_args(args))

    elif args.mode == "render":

        try:
            deployment = Deployment.from_obj(
                yaml.safe_load(args.deployment.read_text())
            )
        except ValueError as e:
            sys.exit(f"Invalid deployment:{e}")

        asyncio.run(_render(deployment, OperatorConfig()))


def _config_from_args(args: Namespace) -> OperatorConfig:

    return OperatorConfig(
        metrics_port=args.metrics_port,
        use_node_annotation=args.use_node_annotation,
        drive_manager_port=args.drive_manager_port,
    )


async def _render(deployment: Deployment, config: OperatorConfig) -> None:

    daemon_set = build_daemon_set(deployment, config)

    async with ApiClient() as api_client:
        obj = api_client.sanitize_for_serialization(daemon_set)

    yaml.safe_dump(obj, sys.stdout, sort_keys=False)


def _parse_args() -> Namespace:

    parser = ArgumentParser(prog="csibm")
    defaults = OperatorConfig()

    subparsers = parser.add_subparsers(dest="mode", required=True)

    # 'operator' subcommand

    operator_parser = subparsers.add_parser("operator")
    operator_parser.add_argument("--use-node-annotation", action="store_true")
    operator_parser.add_argument(
        "--metrics-port", type=int, default=defaults.metrics_port
    )
    operator_parser.add_argument(
        "--drive-manager-port", type=int, default=defaults.drive_manager_port
    )

    # 'render' subcommand

    render_parser = subparsers.add_parser("render")
    render_parser.add_argument("deployment", type=Path)

    # parse arguments

    return parser.parse_args()


# ---------------------------------------------------------------------------- #

if __name__ == "__main__":
    main()

# ---------------------------------------------------------------------------- #
