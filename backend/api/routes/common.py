"""
Response helpers shared by the directory routes.
"""
import json
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from domain.errors import ValidationError

NO_STORE = {"Cache-Control": "no-store"}


def json_response(body: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=body, status_code=status_code, headers=NO_STORE)


def bad_request(message: str) -> JSONResponse:
    return json_response({"ok": False, "error": message}, 400)


def server_error() -> JSONResponse:
    return json_response({"ok": False, "error": "Server error"}, 500)


async def read_json(request: Request) -> Any:
    """Parse the request body; an empty body counts as `{}`."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationError("Invalid JSON") from exc
