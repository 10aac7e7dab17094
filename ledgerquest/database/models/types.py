"""Portable column types shared by the models."""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, plain JSON text elsewhere (SQLite in development/tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")
