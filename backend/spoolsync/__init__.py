"""spoolsync - client-side mirror of a filament inventory server.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
