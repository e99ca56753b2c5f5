"""Services Layer - sync engine, usage ledger, lane resolver and their composition root.

Invariants:
    - Services share one EntityCache, injected by InventoryRuntime
    - HTTP access goes through core/collaborator_protocols.py; only SyncEngine holds the
      push-channel socket
"""
