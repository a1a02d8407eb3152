"""Content core for a forum: content trees, ranking and the tabcoin ledger."""

__version__ = "0.1.0"
