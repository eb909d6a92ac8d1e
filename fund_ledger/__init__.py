"""
Fund Ledger

Member fund and loan tracking with a 24-installment due schedule per account,
Decimal-precise interest recalculation and a hash-chained audit trail.
"""

__version__ = "1.0.0"
