"""
Collection Kernel

A cycle-based ledger for daily cash collection with:
- One active cycle per person, closed atomically by a full withdrawal
- Delta-maintained running totals that can never go negative
- Append-only withdrawal history
- Structured JSON logging of every ledger mutation
"""

__version__ = "0.1.0"
