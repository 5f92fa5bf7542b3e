"""Oracle Orchestrator: request/fulfillment sync for ledger-backed oracles.

A caller records an HTTP-shaped request on a transactional ledger, naming the
oracle identity that must answer it. The orchestrator watches the ledger for
requests assigned to its configured oracle identities, performs the HTTP call,
applies the request's pick expression, and submits the result back to the
ledger. A periodic reconciliation sweep re-dispatches anything the watcher
missed.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version: read from pyproject.toml via importlib.metadata.
#
# If the package is imported without being installed we fall back to the
# literal below so the orchestrator can still start.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("oracle-orchestrator")
except PackageNotFoundError:
    __version__ = "0.1.0"
