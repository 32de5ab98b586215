"""
repairdesk - scheduling, ledger and profit reporting for a home-repair business.
"""

__version__ = "0.1.0"
