#!/usr/bin/env python3
"""
Core Ledger Entry Point

Starts the FastAPI server with the ledger service. Host, port, database and
pool bounds come from LEDGER_* environment variables (see core_ledger.config).
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from core_ledger.api import run_server
from core_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Core Ledger...")
    print(f"Database:  {config.database_url}")
    print(f"Pool:      {config.db_min_conns}..{config.db_max_conns} connections")
    print(f"Accounts:  {config.account_id_min}..{config.account_id_max}")
    print(f"API:       http://{config.api_host}:{config.api_port}")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down Core Ledger...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
