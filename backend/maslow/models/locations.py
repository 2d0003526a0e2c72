from __future__ import annotations

from ..extensions import db
from maslow.time_utils import to_utc_z


class Location(db.Model):
    """A physical site that houses one or more suites."""
    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Suite(db.Model):
    """
    A bookable restroom suite.

    CONTENTION: is_available is the single source of truth for suite
    contention. It is only ever flipped through the conditional updates in
    availability_service.reserve/release, never assigned through the ORM.
    """
    __tablename__ = "suites"
    __table_args__ = (
        db.UniqueConstraint("location_id", "suite_number", name="uq_suites_location_number"),
        db.Index("ix_suites_location_available", "location_id", "is_available", "is_operational"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    suite_number = db.Column(db.String(32), nullable=False)

    is_available = db.Column(db.Boolean, nullable=False, default=True)
    is_operational = db.Column(db.Boolean, nullable=False, default=True)

    # Capabilities
    has_shower = db.Column(db.Boolean, nullable=False, default=False)
    has_bidet = db.Column(db.Boolean, nullable=False, default=False)
    has_heated_seat = db.Column(db.Boolean, nullable=False, default=False)
    has_vanity = db.Column(db.Boolean, nullable=False, default=False)
    has_changing_table = db.Column(db.Boolean, nullable=False, default=False)
    max_occupancy = db.Column(db.Integer, nullable=False, default=1)

    available_samples = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    location = db.relationship("Location", backref=db.backref("suites", lazy=True))

    def __repr__(self) -> str:
        return f"<Suite id={self.id} number={self.suite_number!r} location_id={self.location_id}>"

    @property
    def capabilities(self) -> dict:
        return {
            "has_shower": self.has_shower,
            "has_bidet": self.has_bidet,
            "has_heated_seat": self.has_heated_seat,
            "has_vanity": self.has_vanity,
            "has_changing_table": self.has_changing_table,
            "max_occupancy": self.max_occupancy,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "suite_number": self.suite_number,
            "is_available": self.is_available,
            "is_operational": self.is_operational,
            "capabilities": self.capabilities,
            "available_samples": list(self.available_samples or []),
        }
