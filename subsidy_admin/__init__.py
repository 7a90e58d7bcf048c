"""
Subsidy Admin Backend

Operator backend for a subsidy distribution program that provides:
- Reconciliation of on-chain enrollment and claims with off-chain profiles
- Coordinated ledger mutation and profile writes
- Dashboard aggregates
- REST API for profile management
"""

__version__ = "0.1.0"
