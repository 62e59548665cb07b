"""Repository adapters - Database implementations."""

from .postgres import PostgresUserStore, run_migrations

__all__ = ["PostgresUserStore", "run_migrations"]
