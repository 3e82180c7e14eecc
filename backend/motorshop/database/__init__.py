"""
Database package: declarative base, engine/session management and models.

Import submodules explicitly (``motorshop.database.connection``,
``motorshop.database.models``) to avoid circular imports.
"""

__all__: list[str] = []
