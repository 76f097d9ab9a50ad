from typing import Any

from fastapi.responses import JSONResponse


def create_response(success: bool, message: str, data: Any = None) -> dict:
    return {
        "success": success,
        "message": message,
        "data": data,
    }


def error_response(status_code: int, message: str, data: Any = None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_response(False, message, data),
        headers=headers,
    )
