# triptrack/Models/trip.py
from sqlalchemy import (
    BigInteger, CheckConstraint, Column, DateTime, Float, ForeignKey, Index, Integer, String
)
from sqlalchemy.orm import declared_attr, relationship

from triptrack.DB.base_class import Base


class Trip(Base):
    """
    SQLAlchemy model for trip boundaries.

    A trip is opened by the segmentation engine with ended_at NULL and sealed
    exactly once, when a time gap or an explicit reset supersedes it.

    Related models:
    - TripPoint (1:N) - points recorded while the trip was open
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return "trips"

    id = Column(
        String(100),
        primary_key=True,
        doc="Trip identifier (format: TRIP_YYYYMMDD_DEVICE_HHMMSS_XXXXXX)"
    )

    device_id = Column(
        String(100),
        nullable=False,
        index=True,
        doc="Device that produced this trip"
    )

    started_at = Column(
        DateTime(timezone=True),
        nullable=False,
        doc="UTC instant of the fix that opened the trip"
    )

    ended_at = Column(
        DateTime(timezone=True),
        nullable=True,
        doc="UTC instant the trip was sealed (NULL while open)"
    )

    points = relationship(
        "TripPoint",
        back_populates="trip",
        order_by="TripPoint.seq",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index('idx_trips_device_started_at', 'device_id', 'started_at'),
        CheckConstraint(
            "ended_at IS NULL OR ended_at >= started_at",
            name='check_trip_time_order'
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Trip(id={self.id!r}, device_id={self.device_id!r}, "
            f"started_at={self.started_at!r}, ended_at={self.ended_at!r})>"
        )


class TripPoint(Base):
    """
    SQLAlchemy model for the append-only points of a trip.

    (trip_id, seq) is unique and is the retrieval order.
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return "points"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    trip_id = Column(
        String(100),
        ForeignKey('trips.id', ondelete='CASCADE'),
        nullable=False,
        doc="Trip this point belongs to"
    )

    seq = Column(Integer, nullable=False, doc="Position of the point inside its trip (0-based)")
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    ts = Column(DateTime(timezone=True), nullable=False)

    trip = relationship("Trip", back_populates="points")

    __table_args__ = (
        Index('idx_points_trip_seq', 'trip_id', 'seq', unique=True),
        CheckConstraint("seq >= 0", name='check_point_seq'),
    )

    def __repr__(self) -> str:
        return (
            f"<TripPoint(trip_id={self.trip_id!r}, seq={self.seq}, "
            f"lat={self.lat:.5f}, lng={self.lng:.5f})>"
        )
