"""
triptrack/DB/base_class.py
=================================
SQLAlchemy Base Model Definition
=================================

Declarative base for the trip store tables (SQLAlchemy 2.0 style).
Table names default to the lowercase class name; models that need a
different name (trips, points) override __tablename__.
"""

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models in the application.

    Every model must inherit from it to be registered in Base.metadata,
    which init_db() uses to create the schema.
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower()
