"""
Sample FastAPI application for the AWS CodeBuild pipeline demo.
Four stateless JSON routes, configured from the environment.
"""
import json
import logging
import math
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

__version__ = "1.0.0"

ENDPOINTS = [
    "GET /health",
    "GET /api/hello",
    "POST /api/echo",
]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime settings read from environment variables (or a .env file).

    Empty variables count as unset, so PORT="" falls back to 3000.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        env_ignore_empty=True,
    )

    port: int = 3000
    # APP_ENV takes precedence; NODE_ENV is accepted for existing pipelines
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENV", "NODE_ENV"),
    )
    log_level: str = "INFO"

    @property
    def is_test(self) -> bool:
        return self.environment == "test"


@lru_cache
def get_settings() -> Settings:
    return Settings()


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once for the process."""
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if logging.root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")
    )
    logging.root.addHandler(handler)


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_json_content_type(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def _parse_finite_float(value: str) -> float:
    number = float(value)
    if math.isinf(number):
        raise ValueError(f"{value} is out of range")
    return number


def parse_json_body(body: bytes) -> Any:
    """Strict JSON parsing: NaN, Infinity and overflowing floats are rejected.

    Raises:
        ValueError: body is not valid JSON (UnicodeDecodeError included)
    """
    return json.loads(
        body, parse_constant=_reject_constant, parse_float=_parse_finite_float
    )


async def read_echo_payload(request: Request) -> Any:
    """Parsed JSON body, or None when the body is absent or not JSON."""
    if not is_json_content_type(request.headers.get("content-type", "")):
        return None
    body = await request.body()
    if not body:
        return None
    try:
        return parse_json_body(body)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed JSON body",
        ) from exc


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="CodeBuild Sample API", version=__version__)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "timestamp": utc_timestamp(),
            "version": __version__,
        }

    @app.get("/api/hello")
    async def hello():
        return {
            "message": "Hello from AWS CodeBuild!",
            "environment": settings.environment,
        }

    @app.post("/api/echo")
    async def echo(request: Request):
        """Echo back a JSON body; an absent or non-JSON body echoes as {}."""
        payload = await read_echo_payload(request)
        return {
            "echoed": {} if payload is None else payload,
            "receivedAt": utc_timestamp(),
        }

    @app.get("/")
    async def root():
        """Application info with the list of available endpoints."""
        return {
            "message": "AWS CodeBuild Sample Application",
            "endpoints": list(ENDPOINTS),
        }

    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)

    # Test runs drive the app through a client instead of a socket
    if settings.is_test:
        logger.info("Environment is 'test', not starting the server")
        return

    logger.info("Server running on port %d", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    # Run the app when called as a module
    main()
