"""
Replenishment Kernel

Shop-to-distribution-center stock replenishment with:
- A closed request status state machine with compare-and-swap transitions
- Atomic inventory side effects (DC decrement on shipment, shop credit on receipt)
- Append-only status log per request
- Transactional outbox for notification intents
- Derived DC statistics recomputed on every read
"""

__version__ = "0.1.0"
