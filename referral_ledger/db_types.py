"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import Numeric, Uuid

# UUID type that works with both databases (native UUID on PostgreSQL, CHAR(32) elsewhere)
UUIDType = Uuid

# Currency amounts, two decimal places
MoneyType = Numeric(12, 2)

# Commission rates as fractions (0.0800 = 8%)
RateType = Numeric(6, 4)
