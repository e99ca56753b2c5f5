"""Core Layer - domain types, the entity cache and the lane heuristics.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or schemas/
    - No network IO; the cache only reaches the server through its injected loader
"""
