"""
Fulfillment Kernel

Transactional core for order fulfillment and inventory allocation:
- Batch ledger with non-negative quantities
- Append-only stock movements
- Table-driven document state machines
- Typed, machine-readable errors
"""

__version__ = "0.1.0"
