"""
Run script for starting the Twilio realtime call agent server.

This script validates the required configuration and starts the FastAPI server
with WebSocket settings suited to streaming call audio.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
"""

import argparse
import os
import sys

import uvicorn

from call_agent.config.logging_config import configure_logging
from call_agent.config.settings import ConfigurationError, load_settings

# Configure logging
logger = configure_logging()


def parse_args(settings):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Start the Twilio realtime call agent server"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to run the server on (default: 5050 or TWILIO_SERVER_PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    return parser.parse_args()


def main():
    """Main entry point for starting the server."""
    settings = load_settings()
    args = parse_args(settings)

    try:
        settings.validate_required()
    except ConfigurationError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        sys.exit(1)

    logger.info(f"Starting server on http://{args.host}:{args.port}")
    logger.info(f"Log level: {args.log_level}")
    logger.info(f"Twilio webhook: {settings.incoming_call_url}")
    logger.info(f"Media stream URL: {settings.media_stream_url}")

    uvicorn.run(
        "call_agent.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        # Use HTTP/1.1 for lower overhead than HTTP/2
        http="h11",
        # Disable access logs, we have our own logging
        access_log=False,
        # Reload on code changes during development
        reload=os.getenv("ENV", "production").lower() == "development",
    )


if __name__ == "__main__":
    main()
