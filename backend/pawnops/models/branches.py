from __future__ import annotations

from ..extensions import db
from pawnops.time_utils import to_utc_z


class Branch(db.Model):
    """
    Physical pawnshop location with its own capital balance and inventory.

    The branch row doubles as the lock target for ledger postings: a
    SELECT ... FOR UPDATE on it serializes writers on databases that honor
    row locks.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    region = db.Column(db.String(120), nullable=True)
    contact_number = db.Column(db.String(32), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r}>"

    def coords(self) -> dict | None:
        if self.latitude is None or self.longitude is None:
            return None
        return {"lat": float(self.latitude), "lng": float(self.longitude)}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "city": self.city,
            "region": self.region,
            "contact_number": self.contact_number,
            "lat": self.latitude,
            "lng": self.longitude,
            "created_at": to_utc_z(self.created_at),
        }
