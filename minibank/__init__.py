"""
MiniBank

Personal-banking core: one account per user, deposits, withdrawals and
transfers applied atomically against a relational store, with exact
fixed-point currency math and an append-only transaction ledger.
"""

__version__ = "1.0.0"
