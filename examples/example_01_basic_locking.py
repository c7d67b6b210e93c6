"""Example 01: Basic Locking.

This example demonstrates the fundamental operations:
- Connecting to a store with connect() and creating the lock table
- Acquiring a lock with a timeout and a TTL
- Checking the remaining TTL before doing more work
- Releasing through the handle and through locked()
- Seeing a second session time out while the lock is held
"""

import tempfile
from pathlib import Path

from sharedlocks import LockTimeoutError, SharedLockConfig, connect


def main():
    """Run the basic locking example."""
    print("=" * 80)
    print("SHAREDLOCKS BASIC LOCKING EXAMPLE")
    print("=" * 80)

    store = f"sqlite:///{Path(tempfile.mkdtemp()) / 'locks.db'}"
    config = SharedLockConfig(poll_interval_seconds=0.05)

    # Step 1: Open two independent sessions on the same store.
    # Every coordinator owns one store connection.
    worker = connect(store, config=config)
    other = connect(store, config=config)
    worker.create_table()

    # Step 2: Acquire a lock and check its TTL.
    handle = worker.lock("nightly-report", timeout=0, ttl=60)
    print(f"\nAcquired {handle!r}")
    handle.assert_ttl(30)
    print("At least 30s of TTL left")

    # Step 3: A second session cannot take it while it is held.
    try:
        other.lock("nightly-report", timeout=0.5, ttl=60)
    except LockTimeoutError as e:
        print(f"Other session: {e}")

    for record in other.list_locks():
        print(f"  {record.name}: held by {record.connection_id}, {record.remaining_ttl}s left")

    # Step 4: Release, after which the other session gets it at once.
    handle.release()
    with other.locked("nightly-report", timeout=0, ttl=60):
        print("\nOther session now holds the lock")

    worker.close()
    other.close()


if __name__ == "__main__":
    main()
