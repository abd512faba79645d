"""
Paywire Transfer Ledger

Internal fund transfers between registered accounts, with Decimal money,
an append-only transfer log and stateless bearer-token identity.
"""

__version__ = "1.0.0"
