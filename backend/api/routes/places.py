"""
Place directory API routes: list, add and delete user-submitted places.
"""
import logging
from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError

from db import SessionLocal
from domain.errors import ValidationError
from domain.validation import validate_delete_payload, validate_place_payload
from repositories import PlacesRepository
from api.routes.common import bad_request, json_response, read_json, server_error

router = APIRouter()
places_repo = PlacesRepository()
logger = logging.getLogger(__name__)


@router.get("")
async def list_places():
    try:
        with SessionLocal() as session:
            items = places_repo.list_places(session)
    except SQLAlchemyError:
        logger.exception("Listing places failed")
        return server_error()
    return json_response({"ok": True, "items": [p.to_dict() for p in items]})


@router.post("/add")
async def add_place(request: Request):
    """Validate, replace by id, keep the newest places and return the full list."""
    try:
        place = validate_place_payload(await read_json(request))
    except ValidationError as exc:
        return bad_request(exc.message)
    try:
        with SessionLocal() as session:
            items = places_repo.upsert_place(session, place)
    except SQLAlchemyError:
        logger.exception("Adding place %s failed", place.id)
        return server_error()
    logger.info("Stored place %s (%d in directory)", place.id, len(items))
    return json_response({"ok": True, "items": [p.to_dict() for p in items]})


@router.post("/delete")
async def delete_place(request: Request):
    try:
        place_id = validate_delete_payload(await read_json(request))
    except ValidationError as exc:
        return bad_request(exc.message)
    try:
        with SessionLocal() as session:
            items = places_repo.delete_place(session, place_id)
    except SQLAlchemyError:
        logger.exception("Deleting place %s failed", place_id)
        return server_error()
    return json_response({"ok": True, "items": [p.to_dict() for p in items]})
