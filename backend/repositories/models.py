"""
SQLAlchemy ORM models for persistence.
"""
from datetime import datetime
from sqlalchemy import BigInteger, Column, DateTime, Float, Integer, String, Text

from db import Base


class PlaceORM(Base):
    __tablename__ = "places"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    notes = Column(Text, nullable=False, default="")
    date_iso = Column(String, nullable=False)
    photo_base64 = Column(Text, nullable=False, default="")
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    # insertion order; timestamps can tie
    seq = Column(Integer, nullable=False, default=0, index=True)


class ReviewORM(Base):
    __tablename__ = "reviews"

    id = Column(String, primary_key=True, index=True)
    place_id = Column(String, nullable=False, index=True)
    place_name = Column(String, nullable=False, default="")
    stars = Column(Integer, nullable=False)
    text = Column(Text, nullable=False, default="")
    # epoch milliseconds, as sent by the client
    created_at = Column(BigInteger, nullable=False)
    # insertion order; newest insert is listed first regardless of created_at
    seq = Column(Integer, nullable=False, default=0, index=True)
