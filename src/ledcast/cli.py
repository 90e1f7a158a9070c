import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .core.config import ServerConfig, StripType
from .core.exceptions import ConfigurationError, ValidationError
from .demo import PATTERNS
from .server import SimulatorServer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledcast",
        description="Emulated ws281x LED strip broadcasting frames to web simulators",
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--host", help="Interface to listen on")
    parser.add_argument("--ws-port", type=int, help="Viewer WebSocket port")
    parser.add_argument("--path", help="Viewer WebSocket path")
    parser.add_argument("--http-port", type=int, help="Status API port")
    parser.add_argument("--no-http", action="store_true", help="Do not serve the status API")
    parser.add_argument("--led-count", type=int, help="Number of LEDs on channel 0")
    parser.add_argument("--frequency", type=int, help="Signal frequency in Hz")
    parser.add_argument("--brightness", type=int, help="Maximum brightness (0-255)")
    parser.add_argument(
        "--strip-type",
        choices=[t.name for t in StripType],
        help="Strip color layout",
    )
    parser.add_argument(
        "--demo",
        choices=sorted(PATTERNS) + ["none"],
        default="rainbow",
        help="Animation rendered on channel 0",
    )
    parser.add_argument("--fps", type=float, default=30.0, help="Demo frame rate")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """Load the configuration file, then apply command line overrides"""
    config = ServerConfig.from_yaml(args.config) if args.config else ServerConfig.create_default()

    network = config.network
    if args.host is not None:
        network.host = args.host
    if args.ws_port is not None:
        network.websocket_port = args.ws_port
    if args.path is not None:
        network.websocket_path = args.path
    if args.http_port is not None:
        network.http_port = args.http_port

    device = config.device
    channel = device.channels[0]
    if args.frequency is not None:
        device.frequency = args.frequency
    if args.led_count is not None:
        channel.led_count = args.led_count
    if args.brightness is not None:
        channel.brightness = args.brightness
    if args.strip_type is not None:
        channel.strip_type = StripType[args.strip_type]

    # Revalidate after overrides
    config.__post_init__()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with argument parsing"""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = load_config(args)
    except (ConfigurationError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    demo = None if args.demo == "none" else args.demo
    server = SimulatorServer(config, demo=demo, demo_fps=args.fps, serve_http=not args.no_http)
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
