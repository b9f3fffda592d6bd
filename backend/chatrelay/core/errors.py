"""Structured error responses for the chat relay."""

from fastapi import Request
from fastapi.responses import JSONResponse


class ChatRequestError(Exception):
    """Rejected before any side effect; rendered as {"error": {"message": ...}}."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"message": message}})


async def chat_request_error_handler(request: Request, exc: ChatRequestError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)
