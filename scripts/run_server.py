"""Script to launch the knowledge copilot server."""

from __future__ import annotations

import argparse
import os

import uvicorn

from copilot_server.server import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the knowledge copilot server.")
    parser.add_argument(
        "--host",
        type=str,
        default=os.environ.get("HOST", "127.0.0.1"),
        help="Host to bind the server to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "8000")),
        help="Port to bind the server to (default: 8000)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a YAML config (default: $COPILOT_CONFIG or config/default.yaml)",
    )
    args = parser.parse_args()

    # Conversations live in process memory, so a single worker only.
    app = create_app(config_path=args.config)

    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
