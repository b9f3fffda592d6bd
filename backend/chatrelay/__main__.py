import uvicorn

from chatrelay.core.config import settings

if __name__ == "__main__":
    uvicorn.run("chatrelay.main:app", host=settings.host, port=settings.port, reload=settings.debug)
