"""
Reviews API routes.
"""
import logging
from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError

from db import SessionLocal
from domain.errors import ValidationError
from domain.validation import build_review
from repositories import ReviewsRepository
from api.routes.common import bad_request, json_response, read_json, server_error

router = APIRouter()
reviews_repo = ReviewsRepository()
logger = logging.getLogger(__name__)


@router.get("")
async def list_reviews(placeId: str = ""):
    """Most recent reviews for a place; no placeId means no reviews."""
    if not placeId:
        return json_response({"ok": True, "items": []})
    try:
        with SessionLocal() as session:
            items = reviews_repo.list_reviews(session, placeId)
    except SQLAlchemyError:
        logger.exception("Listing reviews for %s failed", placeId)
        return server_error()
    return json_response({"ok": True, "items": [r.to_dict() for r in items]})


@router.post("/add")
async def add_review(request: Request):
    try:
        review = build_review(await read_json(request))
    except ValidationError as exc:
        return bad_request(exc.message)
    try:
        with SessionLocal() as session:
            reviews_repo.add_review(session, review)
    except SQLAlchemyError:
        logger.exception("Adding review for %s failed", review.place_id)
        return server_error()
    return json_response({"ok": True})
