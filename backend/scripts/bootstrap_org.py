"""Create an organization with its first admin and the Unassigned job site.

Usage: python scripts/bootstrap_org.py "Acme Builders" admin@acme.test "Pat Admin" <password>
"""
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from crew_command import crud
from crew_command.crud import DuplicateError
from crew_command.database import SystemSessionLocal
from crew_command.schemas import RegisterOrganization


async def run(organization_name: str, email: str, admin_name: str, password: str):
    data = RegisterOrganization(
        organization_name=organization_name,
        admin_name=admin_name,
        email=email,
        password=password,
    )
    async with SystemSessionLocal() as db:
        try:
            org, admin = await crud.register_organization(db, data)
        except DuplicateError as e:
            print(f"Not created: {e}")
            return
        await db.commit()
    print(f"Organization {org.name} (id={org.id}, slug={org.slug}) created; admin {admin.email} (id={admin.id})")


if __name__ == "__main__":
    if len(sys.argv) != 5:
        print(__doc__)
        sys.exit(1)
    asyncio.run(run(*sys.argv[1:5]))
