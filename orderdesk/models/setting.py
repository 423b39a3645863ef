"""Store setting model (key/value)."""
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from orderdesk.database import Base, PrimaryKeyType


class Setting(Base):
    """
    Store-wide setting stored as text.

    `type` tells readers how to coerce `value`: 'boolean', 'number',
    'string' or 'json'.
    """

    __tablename__ = 'setting'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    key = Column(String(100), nullable=False, unique=True)
    value = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, default='string')
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Setting(key='{self.key}', value='{self.value}')>"
