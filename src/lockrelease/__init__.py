"""
lockrelease - Linear Token-Release Ledger

Tracks linear release schedules per (asset, beneficiary) pair and keeps an
append-only checkpoint history for point-in-time balance lookups.

Main Components:
- Schedules: schedule storage, maturity arithmetic and atomic claims
- Checkpoints: per-account value history with binary-search lookups
- Events: append-only domain event log for observers and indexers
- Contracts: ERC20 custody collaborator used to move escrowed tokens
"""

__version__ = "0.1.0"
__author__ = "lockrelease Development Team"

__all__ = []
