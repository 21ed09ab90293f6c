"""
Feature modules live under this package.

Each module owns its service functions and JSON API blueprint, while reusing
the platform primitives (auth gate, DB session, error taxonomy).
"""
