"""
TTB Compliance Kernel

Brewery regulatory reporting core with:
- Exact-decimal barrel accounting
- BROP period reconciliation
- CBMA tiered excise allocation
- One-way period finalization with immutable snapshots
"""

__version__ = "0.1.0"
