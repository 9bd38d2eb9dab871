"""Decred ticket vote wait-time analyzer.

Reads a dcrwallet's transaction history, traces each vote back to the ticket
it redeemed and reports how long the ticket waited after maturity.
"""

__version__ = "0.1.0"
