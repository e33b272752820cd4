"""
Driver database model.

Stores the authoritative driver record and its last known position.
"""

from sqlalchemy import Column, String, DateTime, Float, Index
from driver_matching.app.db.session import Base


class DriverRecord(Base):
    """
    Driver location record.

    Coordinates are kept as separate longitude/latitude columns with a
    composite index so radius searches can be narrowed by the database
    before exact distances are computed.
    """
    __tablename__ = "drivers"

    id = Column(String(64), primary_key=True)

    # Position, degrees
    longitude = Column(Float, nullable=False)
    latitude = Column(Float, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_drivers_latitude_longitude", "latitude", "longitude"),
    )

    def __repr__(self):
        return f"<DriverRecord(id='{self.id}', lon={self.longitude}, lat={self.latitude})>"
