"""
Master Directory Initialization Script.

Creates the master database (``MASTER_DATABASE_NAME``, default ``ftth_master``)
and its ``tenant_directory`` table if they do not exist yet, then lists the
active tenants it holds. Running it again is harmless.

**Architecture Context:**
    - Every tenant has its own PostgreSQL database named ``tenant_<domain>``
    - The master database only maps owner usernames to those databases
    - The dashboard service does the same initialization at startup; this
      script is for first-time setup and for checking the directory by hand

**Dependencies:**
    - PostgreSQL server reachable with POSTGRES_HOST/PORT/USER/PASSWORD
    - A user allowed to CREATE DATABASE (connected via POSTGRES_ADMIN_DATABASE)

**Example Usage:**
    ```bash
    python scripts/init_master_db.py
    python scripts/init_master_db.py --list
    ```

**Error Handling:**
    - Exits with code 0 on success
    - Exits with code 1 when the master database cannot be created or reached
"""

import argparse
import asyncio
from pathlib import Path
import sys

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

# Add the project's root directory to the Python path
sys.path.append(str(Path(__file__).parent.parent.resolve()))

from ftth_common.config import get_settings
from ftth_common.database.master_directory import MasterDirectory
from ftth_common.logging import setup_logging


async def main(list_tenants: bool = False) -> int:
    settings = get_settings()
    directory = MasterDirectory(settings)
    logger.info(f"Initializing master directory '{settings.MASTER_DATABASE_NAME}'...")

    try:
        await directory.ensure_initialized()
        logger.info(f"✓ Master directory '{settings.MASTER_DATABASE_NAME}' is ready")

        if list_tenants:
            tenants = await directory.list_active_tenants()
            logger.info(f"{len(tenants)} active tenants")
            for record in tenants:
                logger.info(f"  {record.id:>4}  {record.username:<32} {record.database_name}")
    except Exception as e:
        logger.error(f"✗ Master directory initialization failed: {e}")
        return 1
    finally:
        await directory.close()

    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the master tenant directory")
    parser.add_argument(
        "--list", action="store_true", dest="list_tenants", help="List active tenants afterwards"
    )
    args = parser.parse_args()

    setup_logging("init-master-db")
    sys.exit(asyncio.run(main(list_tenants=args.list_tenants)))
