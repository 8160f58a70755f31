"""
Entry point for the difficulty-gate service.

Run with:
    uvicorn difficulty_gate.api.main:app --reload --port 8100
    python main.py
"""
import uvicorn

from config import get_settings
from difficulty_gate.logging_config import setup_logging

settings = get_settings()

if __name__ == "__main__":
    setup_logging(settings)
    uvicorn.run(
        "difficulty_gate.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
