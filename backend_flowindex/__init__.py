"""
Backend FlowIndex: normalized transaction history for the Flow blockchain.

Binds named arguments to Cadence scripts, extracts contract imports,
normalizes execution results into role-annotated, fee/gas-accounted
transaction records, and streams block results from an access node.
"""

__version__ = "0.1.0"
