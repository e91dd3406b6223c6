from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Reservations, occupants, date capacity rows and transfer requests share
    this metadata so migrations and test fixtures can create the full schema
    from a single place.
    """

    pass
