#!/usr/bin/env python3
"""
Fund Ledger Entry Point

Starts the FastAPI server with the settings from FundLedgerConfig
(FUNDLEDGER_* environment variables or .env).
"""

import sys

from fund_ledger.api import run_server
from fund_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Fund Ledger...")
    print(f"Storage: {config.database_path if config.use_sqlite else 'in-memory'}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug="--reload" in sys.argv)
    except KeyboardInterrupt:
        print("\nShutting down Fund Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
