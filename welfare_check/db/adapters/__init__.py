"""
Database Adapters

Concrete implementations of the DatabaseAdapter interface.
"""

from welfare_check.db.adapters.turso import TursoAdapter

__all__ = ["TursoAdapter"]
