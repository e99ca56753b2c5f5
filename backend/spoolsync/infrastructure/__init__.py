"""Infrastructure Layer - network clients and cross-cutting concerns.

Invariants:
    - Every external call is bounded by a timeout and mapped onto core/errors.py

Design Decisions:
    - Thin wrappers over httpx and websockets; retry policy stays with the callers
      that own it
"""
