"""
Core Ledger

A minimal account ledger: signed transactions applied under an overdraft
limit, and recent-activity statements, backed by a relational store.
"""

__version__ = "1.0.0"
