"""
Reviews repository backed by SQLAlchemy/SQLite.
"""
from typing import List
from sqlalchemy import func
from sqlalchemy.orm import Session

from domain.models import Review
from repositories.models import ReviewORM

MAX_REVIEWS_PER_PLACE = 200


def _review_from_orm(orm: ReviewORM) -> Review:
    return Review(
        id=orm.id,
        place_id=orm.place_id,
        place_name=orm.place_name or "",
        stars=orm.stars,
        text=orm.text or "",
        created_at=orm.created_at,
    )


class ReviewsRepository:
    """Reviews per place, most recently added first, capped per place."""

    def __init__(self, max_per_place: int = MAX_REVIEWS_PER_PLACE):
        self.max_per_place = max_per_place

    def _recent(self, session: Session, place_id: str):
        return (
            session.query(ReviewORM)
            .filter(ReviewORM.place_id == place_id)
            .order_by(ReviewORM.seq.desc())
        )

    def list_reviews(self, session: Session, place_id: str) -> List[Review]:
        if not place_id:
            return []
        return [_review_from_orm(r) for r in self._recent(session, place_id).limit(self.max_per_place).all()]

    def add_review(self, session: Session, review: Review) -> Review:
        orm = session.get(ReviewORM, review.id)
        if orm is None:
            orm = ReviewORM(id=review.id)
        orm.place_id = review.place_id
        orm.place_name = review.place_name
        orm.stars = review.stars
        orm.text = review.text
        orm.created_at = review.created_at
        orm.seq = (session.query(func.max(ReviewORM.seq)).scalar() or 0) + 1
        session.add(orm)
        session.flush()

        overflow = [r.id for r in self._recent(session, review.place_id).offset(self.max_per_place).all()]
        if overflow:
            session.query(ReviewORM).filter(ReviewORM.id.in_(overflow)).delete(synchronize_session=False)
        session.commit()
        return review
