"""
Seed the first super administrator and its home institution.

    cd backend
    BUSDB_SEED_EMAIL=owner@example.com BUSDB_SEED_PASSWORD=... \
    BUSDB_SEED_RUT=12345678-5 python -m busdb.scripts.seed_superadmin

Safe to re-run: once any administrator exists it reports and exits.
"""

import os
import sys

from busdb.apps.accounts.identity import SqlIdentityProvider
from busdb.apps.accounts.services import AdministratorService
from busdb.apps.directory.store import SqlDocumentStore
from busdb.database import SessionLocal
from busdb.errors import BusDBError, ScopeViolation

RUT = os.getenv("BUSDB_SEED_RUT", "")
EMAIL = os.getenv("BUSDB_SEED_EMAIL", "")
PASSWORD = os.getenv("BUSDB_SEED_PASSWORD", "")
NAME = os.getenv("BUSDB_SEED_NAME", "Platform")
SURNAME = os.getenv("BUSDB_SEED_SURNAME", "Owner")
PHONE = os.getenv("BUSDB_SEED_PHONE", "000000000")

INSTITUTION_ID = int(os.getenv("BUSDB_SEED_INSTITUTION_ID", "1"))
INSTITUTION_NAME = os.getenv("BUSDB_SEED_INSTITUTION_NAME", "Platform")
INSTITUTION_ADDRESS = os.getenv("BUSDB_SEED_INSTITUTION_ADDRESS", "N/A")


def main() -> int:
    if not (RUT and EMAIL and PASSWORD):
        print("Set BUSDB_SEED_RUT, BUSDB_SEED_EMAIL and BUSDB_SEED_PASSWORD.", file=sys.stderr)
        return 2

    db = SessionLocal()
    try:
        service = AdministratorService(SqlDocumentStore(db), SqlIdentityProvider(db))
        record = service.bootstrap_super_admin(
            {
                "rut": RUT,
                "name": NAME,
                "surname": SURNAME,
                "email": EMAIL,
                "phone": PHONE,
                "institution_id": INSTITUTION_ID,
                "institution": {
                    "id": INSTITUTION_ID,
                    "name": INSTITUTION_NAME,
                    "address": INSTITUTION_ADDRESS,
                    "email": EMAIL,
                    "phone": PHONE,
                    "manager_name": f"{NAME} {SURNAME}",
                },
            },
            PASSWORD,
        )
    except ScopeViolation:
        print("Administrators already exist; nothing to do.")
        return 0
    except BusDBError as exc:
        print(f"Seeding failed: {exc.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print("OK:", record["email"], "rut =", record["rut"], "institution =", record["institution_id"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
