"""Reset database to clean state."""
from loyalty_ledger.lib.db import drop_db, init_db


def reset_db() -> None:
    print("Resetting database...")
    drop_db()
    init_db()
    print("Database reset complete!")


if __name__ == "__main__":
    reset_db()
