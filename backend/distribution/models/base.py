from __future__ import annotations
from sqlalchemy.orm import declarative_base

# Shared metadata for every distribution table (alembic targets Base.metadata).
Base = declarative_base()
