"""
Deal Desk Kernel

The persistence-backed core of the deal approval workflow:
- Deal status state machine types
- Role / department authorization types
- Append-only approval decisions with compare-and-set writes
- Status history for every transition
"""

__version__ = "0.1.0"
