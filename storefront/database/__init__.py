"""
Database package initialization.

The package follows a modular structure:
- base: Declarative base and shared column mixins
- connection: Engine, session factory and request scoped sessions
- models: SQLAlchemy ORM models for all entities
"""

__all__ = []
