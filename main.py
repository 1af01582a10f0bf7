"""
markerfill Service: Main Entry Point
====================================
Starts the Flask-based template fill microservice.

Usage:
    python main.py                    # Default: 0.0.0.0:5000
    python main.py --port 8000        # Custom port
    python main.py --storage ./data   # Custom registry directory
    python main.py --debug            # Debug mode
"""

import argparse
import logging

from markerfill.server import create_app

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="markerfill Service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=5000, help="Bind port")
    parser.add_argument("--storage", default=None, help="Registry directory")
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    args = parser.parse_args()

    config = {"STORAGE_DIR": args.storage} if args.storage else None
    app = create_app(config)

    engine = app.extensions["markerfill"]
    logger.info(f"Registry path: {engine.registry.base_dir.resolve()}")
    logger.info(f"Starting server on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug, threaded=True)


if __name__ == "__main__":
    main()
