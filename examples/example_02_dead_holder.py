"""Example 02: Recovering from a Dead Holder.

When a holder's connection dies its native session lock goes with it. The
next caller notices that the claim is no longer backed by a live session,
evicts it and takes the lock without waiting for the TTL to run out.
"""

import tempfile
import threading
import time
from pathlib import Path

from sharedlocks import SharedLockConfig, connect


def main():
    """Run the dead holder example."""
    print("=" * 80)
    print("SHAREDLOCKS DEAD HOLDER EXAMPLE")
    print("=" * 80)

    store = f"sqlite:///{Path(tempfile.mkdtemp()) / 'locks.db'}"
    config = SharedLockConfig(poll_interval_seconds=0.05)

    crashed = connect(store, config=config)
    crashed.create_table()
    crashed.lock("import-job", timeout=0, ttl=3600)
    print("\nFirst session holds 'import-job' with a one hour TTL")

    survivor = connect(store, config=config)

    # Simulate a crash one second from now.
    threading.Timer(1.0, crashed.close).start()

    start = time.monotonic()
    with survivor.locked("import-job", timeout=10, ttl=60):
        print(f"Second session acquired the lock after {time.monotonic() - start:.1f}s")

    survivor.close()


if __name__ == "__main__":
    main()
