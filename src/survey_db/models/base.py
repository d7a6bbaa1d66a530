"""SQLAlchemy declarative base for survey_db."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
