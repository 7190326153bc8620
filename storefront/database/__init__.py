"""
Database package.

- base: declarative base and column mixins
- connection: async engine, session factory and FastAPI dependency
- models: ORM models for users, products, coupons and orders

Submodules are imported explicitly where needed to avoid import cycles.
"""

__all__ = []
