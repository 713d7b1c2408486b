"""
Loyalty Ledger - customer identity, purchase aggregates and spend rankings
for small businesses.
"""
__version__ = "1.0.0"
