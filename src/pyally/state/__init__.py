"""State/reconciliation layer.

This package is the single source of truth for how polled device values
and local writes are merged into the host state store.
"""
