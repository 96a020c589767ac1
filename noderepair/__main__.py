"""Run the node auto-repair controller standalone.

Usage:
    python -m noderepair --config /etc/noderepair.yaml
    python -m noderepair --nodes-file nodes.yaml --repair-command "reboot-node {node}"
    python -m noderepair --kubeconfig ~/.kube/config --repair-command "reboot-node {node}"

Without a nodes file the controller watches the cluster named by the
kubeconfig, or the one it runs in.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from noderepair.config.repair_config import load_config
from noderepair.coordination.auto_repair import AutoRepair, CommandAutoRepair, LoggingAutoRepair
from noderepair.coordination.health_feed import NodeFeed
from noderepair.coordination.kubernetes_source import (
    KubernetesNodeSource,
    KubernetesWatchFeed,
    load_core_api,
)
from noderepair.coordination.node_auto_repair import NodeAutoRepair
from noderepair.coordination.node_source import NodeSource, YamlNodeSource
from noderepair.metrics import start_metrics_server
from noderepair.utils.exceptions import ConfigError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Node Auto Repair")
    parser.add_argument("--config", help="YAML config file (default: $NODE_AUTO_REPAIR_CONFIG_PATH)")
    parser.add_argument("--nodes-file", help="YAML/JSON node list to watch")
    parser.add_argument("--kubeconfig", help="Kubeconfig for the cluster to watch when no nodes file is given")
    parser.add_argument(
        "--repair-command",
        help="Command run per attempt; {node} and {attempts} are substituted",
    )
    parser.add_argument("--metrics-port", type=int, default=0, help="Prometheus port (0 = off)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if args.nodes_file:
        config.nodes_file = args.nodes_file
    if args.repair_command:
        config.repair_command = args.repair_command
    if args.kubeconfig:
        config.kubeconfig = args.kubeconfig

    source: NodeSource
    feed: NodeFeed | None = None
    if config.nodes_file:
        source = YamlNodeSource(config.nodes_file)
    else:
        api = load_core_api(config.kubeconfig)
        source = KubernetesNodeSource(api)
        feed = KubernetesWatchFeed(api)

    auto_repair: AutoRepair
    if config.repair_command:
        auto_repair = CommandAutoRepair(
            config.repair_command,
            timeout=config.repair_command_timeout_seconds,
        )
    else:
        logger.warning("No repair command configured, running in dry-run mode")
        auto_repair = LoggingAutoRepair()

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    controller = NodeAutoRepair(
        auto_repair=auto_repair,
        source=source,
        config=config,
        feed=feed,
    )

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    if not await controller.start():
        return 1
    try:
        await shutdown.wait()
    finally:
        logger.info("Shutting down...")
        await controller.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
