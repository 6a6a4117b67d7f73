"""
User-submitted places repository backed by SQLAlchemy/SQLite.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from domain.models import SubmittedPlace
from repositories.models import PlaceORM

MAX_PLACES = 300


def _place_from_orm(orm: PlaceORM) -> SubmittedPlace:
    return SubmittedPlace(
        id=orm.id,
        name=orm.name,
        address=orm.address,
        date_iso=orm.date_iso,
        lat=orm.lat,
        lon=orm.lon,
        notes=orm.notes or "",
        photo_base64=orm.photo_base64 or "",
        created_at=orm.created_at.isoformat() if orm.created_at else None,
    )


class PlacesRepository:
    """CRUD operations for user-submitted places. Newest first, capped at MAX_PLACES."""

    def __init__(self, max_places: int = MAX_PLACES):
        self.max_places = max_places

    def list_places(self, session: Session) -> List[SubmittedPlace]:
        places = (
            session.query(PlaceORM)
            .order_by(PlaceORM.seq.desc())
            .limit(self.max_places)
            .all()
        )
        return [_place_from_orm(p) for p in places]

    def get_place(self, session: Session, place_id: str) -> Optional[SubmittedPlace]:
        orm = session.get(PlaceORM, place_id)
        return _place_from_orm(orm) if orm else None

    def upsert_place(self, session: Session, place: SubmittedPlace) -> List[SubmittedPlace]:
        """Insert or replace by id, evict the oldest beyond the cap, return the full list."""
        orm = session.get(PlaceORM, place.id)
        if orm is None:
            orm = PlaceORM(id=place.id)
        orm.name = place.name
        orm.address = place.address
        orm.notes = place.notes
        orm.date_iso = place.date_iso
        orm.photo_base64 = place.photo_base64
        orm.lat = place.lat
        orm.lon = place.lon
        # a replaced place moves to the front like a new one
        orm.created_at = datetime.utcnow()
        orm.seq = (session.query(func.max(PlaceORM.seq)).scalar() or 0) + 1
        session.add(orm)
        session.flush()
        self._evict_oldest(session)
        session.commit()
        return self.list_places(session)

    def delete_place(self, session: Session, place_id: str) -> List[SubmittedPlace]:
        orm = session.get(PlaceORM, place_id)
        if orm:
            session.delete(orm)
            session.commit()
        return self.list_places(session)

    def _evict_oldest(self, session: Session) -> None:
        keep_ids = [
            row[0]
            for row in session.query(PlaceORM.id)
            .order_by(PlaceORM.seq.desc())
            .limit(self.max_places)
            .all()
        ]
        session.query(PlaceORM).filter(~PlaceORM.id.in_(keep_ids)).delete(synchronize_session=False)
