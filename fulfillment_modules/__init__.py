"""
Fulfillment Modules.

Orchestration over the kernel and the pure engines.  Each module contains:
- Domain models (frozen DTOs, the nouns)
- ORM models (persistence)
- Workflows (state machines)
- Configuration schemas
- A service owning the transaction boundary

Modules:
- Inventory: Products, batch ledger, stock movements, corrections
- Sales: Sales orders, allocation, fulfillment, invoices, returns
- Procurement: Purchase orders, goods receipts, vendor bills, three-way match
- Requisitions: Purchase requests, approval rules, conversion to POs
"""
