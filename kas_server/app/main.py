# kas_server/app/main.py
import uvicorn

from .config import get_settings
from .logging import setup_logging


def run(host: str = "0.0.0.0", port: int = 8000):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    uvicorn.run("kas_server.app.api:app", host=host, port=port, log_level=settings.LOG_LEVEL.lower(),
                log_config=None)


if __name__ == '__main__':
    run()
