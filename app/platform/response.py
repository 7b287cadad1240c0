from typing import Any, Dict, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Uniform envelope for every metrics API response.
    `status` is "success" below 400, otherwise "error".
    """
    status_str = "success" if status_code < 400 else "error"
    payload = jsonable_encoder(data) if data is not None else {}

    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "status_code": status_code,
            "status": status_str,
            "message": message,
            "data": payload,
        },
    )
