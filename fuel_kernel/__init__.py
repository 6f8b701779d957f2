"""
Fuel Kernel - Fuel Allocation & Auto-Linking Engine

Tracks per-journey fuel consumption for a trucking fleet:
- Checkpoint slot ledger with a derived running balance
- Automatic linking of yard dispense events to in-flight journeys
- Configuration-missing locks on journey records
- Append-only dispense history with compensating reversals
"""

__version__ = "0.1.0"
