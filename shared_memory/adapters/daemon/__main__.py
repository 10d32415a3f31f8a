"""Entry point for running the daemon server as a module.

Usage:
    python -m shared_memory.adapters.daemon [options]
"""

from shared_memory.adapters.daemon.server import main

if __name__ == "__main__":
    main()
