"""
Entry point for the wordbank engine API.

Run with:
    uvicorn main:app --reload --port 8100
    python main.py
"""
import uvicorn

from config import get_settings
from wordbank.api.main import app  # noqa: F401  re-exported for "uvicorn main:app"


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "wordbank.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
