import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatrelay.core.config import settings
from chatrelay.core.database import init_db
from chatrelay.core.errors import ChatRequestError, chat_request_error_handler
from chatrelay.api import chat, conversations
from chatrelay.services.llm import create_http_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    init_db()
    app.state.http_client = create_http_client()

    yield

    await app.state.http_client.aclose()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.add_exception_handler(ChatRequestError, chat_request_error_handler)  # type: ignore[arg-type]

app.include_router(chat.router, prefix="/api/chat", tags=["chat"])
app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])


@app.get("/api/health")
async def health():
    return {"status": "ok", "app": settings.app_name, "ts": int(time.time() * 1000)}
