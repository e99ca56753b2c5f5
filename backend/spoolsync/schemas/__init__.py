"""Pydantic Schemas - validation of server records, push events and API payloads.

Invariants:
    - Schemas validate at the system boundary; core entities stay plain dataclasses
"""
