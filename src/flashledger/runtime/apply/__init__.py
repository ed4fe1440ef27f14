# src/flashledger/runtime/apply/__init__.py
"""Domain-specific apply modules.

These modules implement deterministic ledger state transitions for subsets
of tx types. domain_dispatch.apply_tx() routes each tx to the first applier
that claims it.

NOTE: Keep this package import-safe (no imports of domain_dispatch here).
"""

from __future__ import annotations

__all__ = [
    "token",
]
