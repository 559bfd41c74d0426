"""Main entry point for pifrost."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from http.server import HTTPServer
from pathlib import Path

import structlog

from .config import DEFAULT_CONFIG_PATH, Config, PiholeConfig, load_config_auto
from .dispatcher import WatchDispatcher
from .errors import PifrostError
from .handlers import IngressHandler, ServiceHandler
from .health import start_health_server
from .kube import KubernetesResources, load_kube_config
from .pihole import PiholeClient, wait_until_reachable
from .reconciler import RecordReconciler
from .resolver import INGRESS_POLL_ATTEMPTS, SERVICE_POLL_ATTEMPTS, IPResolver
from .resources import ResourceKind

VERSION = "0.3.0"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str) -> None:
    """Configure structlog for stdout logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            LOG_LEVELS.get(level.lower(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="pifrost",
        description="An external DNS provider for Kubernetes and Pi-hole",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Logging level (default: info)",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    subcommands.add_parser("version", help="Print version")

    server = subcommands.add_parser("server", help="Start server")
    server.add_argument(
        "--config",
        "-c",
        type=Path,
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH} if exists, else env vars)",
    )
    server.add_argument("--pihole-host", help="Hostname or IP of the Pi-hole instance")
    server.add_argument("--pihole-token", help="API token for Pi-hole")
    server.add_argument(
        "--insecure",
        action="store_true",
        default=None,
        help="Communicate over http:// (default: https://)",
    )
    server.add_argument(
        "--kubeconfig", type=Path, help="Path to kubeconfig (default: in-cluster config)"
    )
    server.add_argument(
        "--ingress-auto",
        action="store_true",
        default=None,
        help="Do not require the annotation on Ingress resources",
    )
    server.add_argument(
        "--ingress-externalip",
        help="Force use of this external IP for Ingress hosts",
    )
    server.add_argument("--health-port", type=int, help="HTTP health endpoint port")
    return parser.parse_args(argv)


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Let CLI flags win over file or environment configuration."""
    pihole = {
        "host": args.pihole_host,
        "token": args.pihole_token,
        "insecure": args.insecure,
    }
    kubernetes = {
        "kubeconfig": args.kubeconfig,
        "ingress_auto": args.ingress_auto,
        "ingress_external_ip": args.ingress_externalip,
    }
    settings = {"log_level": args.log_level, "health_port": args.health_port}

    def changed(values: dict[str, object]) -> dict[str, object]:
        return {k: v for k, v in values.items() if v is not None}

    return config.model_copy(
        update={
            "pihole": config.pihole.model_copy(update=changed(pihole)),
            "kubernetes": config.kubernetes.model_copy(update=changed(kubernetes)),
            "settings": config.settings.model_copy(update=changed(settings)),
        }
    )


def load_server_config(args: argparse.Namespace) -> tuple[Config, str]:
    """Load configuration, allowing the Pi-hole flags alone to stand in for it."""
    try:
        config, source = load_config_auto(args.config)
    except ValueError:
        if args.config is not None or not (args.pihole_host and args.pihole_token):
            raise
        config = Config(pihole=PiholeConfig(host=args.pihole_host, token=args.pihole_token))
        source = "flags"
    return apply_overrides(config, args), source


class GracefulShutdown:
    """Handle graceful shutdown on SIGTERM/SIGINT."""

    def __init__(self) -> None:
        self.should_exit = False
        signal.signal(signal.SIGTERM, self._handler)
        signal.signal(signal.SIGINT, self._handler)

    def _handler(self, signum: int, frame: object) -> None:
        logger = structlog.get_logger()
        logger.info("Received shutdown signal", signal=signum)
        self.should_exit = True


def build_dispatcher(
    config: Config, pihole: PiholeClient, resources: KubernetesResources
) -> WatchDispatcher:
    """Wire handlers for both resource kinds around one shared client."""
    reconciler = RecordReconciler(pihole)
    ingress_resolver = IPResolver(
        resources,
        attempts=INGRESS_POLL_ATTEMPTS,
        override=config.kubernetes.ingress_external_ip,
    )
    service_resolver = IPResolver(resources, attempts=SERVICE_POLL_ATTEMPTS)
    return WatchDispatcher(
        resources,
        {
            ResourceKind.INGRESS: IngressHandler(reconciler, ingress_resolver),
            ResourceKind.SERVICE: ServiceHandler(reconciler, service_resolver),
        },
    )


def run_server(config: Config) -> None:
    """Probe Pi-hole, then watch the cluster until signalled."""
    logger = structlog.get_logger()

    logger.info(
        "Starting pifrost",
        pihole_host=config.pihole.host,
        insecure=config.pihole.insecure,
        ingress_auto=config.kubernetes.ingress_auto,
        ingress_external_ip=config.kubernetes.ingress_external_ip,
        health_port=config.settings.health_port,
    )
    if config.kubernetes.ingress_auto:
        logger.info("Externalizing all ingress objects")
    else:
        logger.info("Will only externalize dns for ingress with annotations")

    shutdown = GracefulShutdown()
    health_server: HTTPServer | None = None

    try:
        pihole = PiholeClient(config.pihole)
    except PifrostError as e:
        logger.error("Could not initialize DNS provider", error=str(e))
        sys.exit(1)

    with pihole:
        try:
            wait_until_reachable(pihole)
        except PifrostError as e:
            logger.error("Could not validate DNS provider", error=str(e))
            sys.exit(1)

        load_kube_config(config.kubernetes.kubeconfig)
        resources = KubernetesResources(manage_all=config.kubernetes.ingress_auto)
        dispatcher = build_dispatcher(config, pihole, resources)
        dispatcher.start()

        if config.settings.health_port:
            health_server = start_health_server(
                config.settings.health_port,
                live_check=dispatcher.is_alive,
                ready_check=pihole.health_check,
            )

        while not shutdown.should_exit and dispatcher.is_alive():
            time.sleep(1)

        failed = not shutdown.should_exit
        if failed:
            logger.error("Watchers stopped unexpectedly")

        dispatcher.stop()
        dispatcher.join(timeout=5)

        if health_server:
            health_server.shutdown()

    logger.info("Shutdown complete")
    if failed:
        sys.exit(1)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    if args.command == "version":
        configure_logging(args.log_level or "info")
        structlog.get_logger().info("pifrost version", version=VERSION)
        return

    try:
        config, config_source = load_server_config(args)
    except Exception as e:
        configure_logging(args.log_level or "info")
        structlog.get_logger().error("Failed to load configuration", error=str(e))
        sys.exit(1)

    configure_logging(config.settings.log_level)
    structlog.get_logger().info("Configuration loaded", source=config_source, version=VERSION)

    run_server(config)


if __name__ == "__main__":
    main()
