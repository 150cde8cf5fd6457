import uvicorn

from .config import settings
from .logger import logger
from .main import app


def serve() -> None:
    logger.info(f"Serving panel API on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    serve()
