from .postgres import PostgreSQLStore

__all__ = ["PostgreSQLStore"]
