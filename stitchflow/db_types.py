"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import JSON, Numeric, Uuid

# Use JSON instead of JSONB for cross-database compatibility
# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# UUID type that works with both databases (native uuid on PostgreSQL, CHAR(32) on SQLite)
UUIDType = Uuid(as_uuid=True)

# Material quantities (metres, pieces, grams) and money
QuantityType = Numeric(12, 3, asdecimal=True)
MoneyType = Numeric(12, 2, asdecimal=True)
