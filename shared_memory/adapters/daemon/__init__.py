"""Daemon that keeps the embedding model and backend clients warm.

A short-lived client process finds (or spawns) one long-lived daemon, sends
it a single request and exits. The daemon keeps the expensive state loaded
across invocations.

Architecture:
- protocol.py: newline-delimited JSON-RPC framing
- warm_embedder.py: load-once embedder shared by all connections
- resource_cache.py: one initialized vector store client per backend
- router.py: method dispatch and error mapping
- server.py: daemon process (probe, bind, accept loop, idle shutdown)
- client.py: discover-or-spawn client
- lifecycle.py: spawn/start/stop/status
"""

from shared_memory.adapters.daemon.client import MemoryClient

__all__ = ["MemoryClient"]
