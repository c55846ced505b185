"""Live auction service: assignment engine, tenant rooms and client reconciliation."""

__version__ = "0.1.0"
