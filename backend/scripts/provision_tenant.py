"""
Tenant Provisioning Script.

Provisions a tenant from the command line, the same way POST /api/v1/tenants
does:

    1. Validate ``admin@<domain>`` and refuse duplicates
    2. Create ``tenant_<domain>`` and its schema
    3. Register the tenant in the master directory
    4. Insert the owner account (role admin, position Owner)

The password is read from ``--password`` or prompted for when omitted.

**Example Usage:**
    ```bash
    python scripts/provision_tenant.py admin@acme \\
        --agent-name "Ali Hassan Kareem" --company-name "Acme Fiber" \\
        --governorate Baghdad --region Karrada \\
        --phone 07701234567 --email owner@acme.iq

    # Operator recovery: drop a database left behind by a failed provisioning
    python scripts/provision_tenant.py admin@acme --drop-database tenant_acme
    ```

**Error Handling:**
    - Exits with code 0 on success
    - Exits with code 1 on any tenancy error; a partial failure names the
      database and the step that failed
"""

import argparse
import asyncio
import getpass
from pathlib import Path
import sys

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

# Add the project's root directory to the Python path
sys.path.append(str(Path(__file__).parent.parent.resolve()))

from ftth_common.config import get_settings
from ftth_common.exceptions import APIError, ProvisioningPartialFailure
from ftth_common.logging import setup_logging
from ftth_common.models import TenantProvisionRequest
from ftth_common.registry import TenancyRegistry


async def main(args: argparse.Namespace) -> int:
    registry = TenancyRegistry(get_settings())

    try:
        await registry.start()

        if args.drop_database:
            logger.warning(f"Dropping database '{args.drop_database}'")
            await registry.provisioner.drop_database(args.drop_database)
            logger.info(f"✓ Dropped database '{args.drop_database}'")
            return 0

        request = TenantProvisionRequest(
            username=args.username,
            password=args.password or getpass.getpass("Owner password: "),
            agent_name=args.agent_name,
            company_name=args.company_name,
            governorate=args.governorate,
            region=args.region,
            phone=args.phone,
            email=args.email,
        )
        database_name = await registry.provisioner.provision_tenant(request)
        logger.info(f"✓ Provisioned tenant {args.username}")
        logger.info(f"✓ Database name: {database_name}")
        return 0

    except ProvisioningPartialFailure as e:
        logger.error(f"✗ {e.message}")
        logger.error(f"  database: {e.database_name}, step: {e.step}")
        return 1
    except APIError as e:
        logger.error(f"✗ {e.message}")
        return 1
    except Exception as e:
        logger.error(f"✗ Error during provisioning: {e}")
        return 1
    finally:
        await registry.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Provision an FTTH tenant")
    parser.add_argument("username", help="Owner username, admin@<domain>")
    parser.add_argument("--password", "-p", help="Owner password (prompted when omitted)")
    parser.add_argument("--agent-name", default="Owner", help="Agent full name")
    parser.add_argument("--company-name", default="FTTH", help="Company name")
    parser.add_argument("--governorate", default="Baghdad")
    parser.add_argument("--region", default="Baghdad")
    parser.add_argument("--phone", default="0000000000")
    parser.add_argument("--email", help="Owner email (default: the username)")
    parser.add_argument(
        "--drop-database",
        metavar="DATABASE_NAME",
        help="Drop this database instead of provisioning (operator recovery)",
    )
    args = parser.parse_args()
    args.email = args.email or args.username

    setup_logging("provision-tenant")
    sys.exit(asyncio.run(main(args)))
