"""State layer.

This package is the single source of truth for hazard lifecycle state:
the store owns records, the ledger owns votes, and the policy module
decides transitions.
"""
