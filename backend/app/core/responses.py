import json
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


# Custom JSON encoder that preserves Unicode characters (emojis)
class UnicodeJSONResponse(JSONResponse):
    def render(self, content) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


def success_response(data: Any = None, message: Optional[str] = None, status_code: int = 200) -> UnicodeJSONResponse:
    """Wrap ``data`` in the ``{success, message, data}`` envelope."""
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    body = {"success": True}
    if message:
        body["message"] = message
    body["data"] = jsonable_encoder(data if data is not None else {})
    return UnicodeJSONResponse(status_code=status_code, content=body)
