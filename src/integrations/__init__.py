"""
Integrations layer.
This package contains the boundaries between the brokerage core and the
systems it depends on:
- Persistence of brokers, products, clients, offers, policies and commissions
- Blob storage for payment proof files

Key rule:
- Lifecycle services MUST NOT talk to a database or the filesystem directly.
- They call the contracts in src/integrations/contracts/storage.py.

Switching implementations:
- The selection of in-memory vs SQL store happens in ONE place (src/api/main.py).
"""

from .contracts.interfaces import ActorContext, Role
from .contracts.storage import BrokerageStore, FileStore

__all__ = ["ActorContext", "Role", "BrokerageStore", "FileStore"]
