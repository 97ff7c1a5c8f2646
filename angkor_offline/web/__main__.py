"""
CLI entry point for the Angkor Offline web server.

Usage:
    python -m angkor_offline.web -c angkor-offline.yaml --port 8430
    angkor-offline-web --port 8430
"""

import argparse
import logging
import sys


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Angkor Offline Web Server",
        prog="angkor-offline-web",
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8430,
        help="Server port (default: 8430)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Server host (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--cors-origins",
        nargs="*",
        default=None,
        help="Allowed CORS origins",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    try:
        import uvicorn
    except ImportError:
        print(
            "uvicorn is required. Install with: pip install angkor-offline[web]",
            file=sys.stderr,
        )
        sys.exit(1)

    from .server import create_app

    app = create_app(config_path=args.config, cors_origins=args.cors_origins)

    print("\n  Angkor Offline Web Server")
    if args.config:
        print(f"  Config: {args.config}")
    print(f"  URL: http://{args.host}:{args.port}")
    print(f"  WebSocket: ws://{args.host}:{args.port}/api/offline/ws")
    print()

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
