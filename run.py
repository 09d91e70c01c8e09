#!/usr/bin/env python3
"""
Microcredit Loan Core Entry Point

Starts the FastAPI server with settings from MICROCREDIT_* environment variables.
"""

import sys

from microcredit.config import get_config
from microcredit.logging_config import setup_logging
from microcredit.api import run_server


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("Starting Microcredit Loan Core...")
    print(f"Storage: {'SQLite ' + config.database_path if config.use_sqlite else 'in-memory'}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False,
            workers=config.api_workers
        )
    except KeyboardInterrupt:
        print("\nShutting down Microcredit Loan Core...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
