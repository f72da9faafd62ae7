"""Export helpers for derivative estimates."""

from .tables import derivative_table, write_derivatives

__all__ = ["derivative_table", "write_derivatives"]
