#!/usr/bin/env python3
"""
Paywire Entry Point

Starts the FastAPI server with settings taken from PAYWIRE_* environment variables.
"""

import sys

from paywire.api import run_server
from paywire.config import get_config
from paywire.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    print(f"Starting Paywire on http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\nShutting down Paywire...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
