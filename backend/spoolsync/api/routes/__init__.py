"""Route Modules - one file per resource/concern.

Invariants:
    - Each module defines its own APIRouter with prefix and tags
    - Routes never contain business logic (delegate to InventoryRuntime)
    - Routes that block on the inventory server are plain `def` so they run in the threadpool
"""
