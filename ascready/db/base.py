# FILE: ascready/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All facility-scoped tables (catalog, inventory, cases, attestations) inherit from this."""
    pass
