# Overview: Service-layer operations for the branch directory.

from __future__ import annotations

from ..extensions import db
from ..models import Branch
from ..validation import ConflictError, NotFoundError, ValidationError


def get_branch(branch_id: int) -> Branch:
    branch = db.session.query(Branch).filter_by(id=branch_id).first()
    if not branch:
        raise NotFoundError(f"Branch {branch_id} not found")
    return branch


def list_branches() -> list[Branch]:
    return db.session.query(Branch).order_by(Branch.name.asc()).all()


def _coordinate(value, field: str, bound: float) -> float | None:
    if value is None or value == "":
        return None
    try:
        coord = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not -bound <= coord <= bound:
        raise ValidationError(f"{field} out of range")
    return coord


def create_branch(
    name: str,
    code: str | None = None,
    *,
    address: str | None = None,
    city: str | None = None,
    region: str | None = None,
    contact_number: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
) -> Branch:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Branch name is required")

    if db.session.query(Branch).filter_by(name=name).first():
        raise ConflictError(f"Branch {name!r} already exists")
    if code and db.session.query(Branch).filter_by(code=code).first():
        raise ConflictError(f"Branch code {code!r} already exists")

    branch = Branch(
        name=name,
        code=code,
        address=address,
        city=city,
        region=region,
        contact_number=contact_number,
        latitude=_coordinate(latitude, "latitude", 90.0),
        longitude=_coordinate(longitude, "longitude", 180.0),
    )
    db.session.add(branch)
    db.session.commit()
    return branch
