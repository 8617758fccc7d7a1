"""
Remove an identity account left behind by a failed administrator create.

`OrphanedProviderAccount` errors are logged with the account id; once an
operator has confirmed the administrator record was never written:

    cd backend
    python -m busdb.scripts.reconcile_orphaned_account --account-id <id>

Accounts still linked to an administrator record are never removed.
"""

import argparse
import sys

from busdb.apps.accounts.identity import IdentityProvider, SqlIdentityProvider
from busdb.apps.directory.entities import ADMINISTRATORS
from busdb.apps.directory.store import DocumentStore, SqlDocumentStore
from busdb.database import SessionLocal
from busdb.errors import BusDBError


def linked_administrator(documents: DocumentStore, account_id: str):
    matches = documents.scan(ADMINISTRATORS, lambda r: r.get("account_id") == account_id)
    return matches[0] if matches else None


def discard_orphaned_account(
    documents: DocumentStore,
    identity: IdentityProvider,
    account_id: str,
) -> bool:
    """Delete the account unless an administrator record still uses it."""
    if linked_administrator(documents, account_id) is not None:
        return False
    identity.delete_account(account_id)
    return True


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Delete an identity account that has no administrator record."
    )
    parser.add_argument("--account-id", required=True, help="Account id from the orphan log entry.")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        documents = SqlDocumentStore(db)
        record = linked_administrator(documents, args.account_id)
        if record is not None:
            print(f"Account {args.account_id} belongs to administrator {record['rut']}; keeping it.")
            return 1
        discard_orphaned_account(documents, SqlIdentityProvider(db), args.account_id)
    except BusDBError as exc:
        print(f"Reconciliation failed: {exc.message}", file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f"Removed identity account {args.account_id}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
