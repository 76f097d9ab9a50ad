import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from sweetshop import config
from sweetshop.database import Database
from sweetshop.redis_client import RedisClient
from sweetshop.responses import create_response, error_response
from sweetshop.routers import admin_router, auth_router, user_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

API_PREFIX = "/v1"


def create_app(database: Database = None, cache: RedisClient = None) -> FastAPI:
    """
    Build the application.

    The database and the Redis client live for as long as the app does:
    they are created (or taken from the arguments) at startup, kept on
    ``app.state`` and released at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.database = database or Database()
        app.state.cache = cache or RedisClient()

        if app.state.database.wait_until_ready():
            app.state.database.create_all()
            logger.info("Database tables are ready")
        else:
            logger.error("Database is not reachable, requests will fail until it is")

        if app.state.cache.is_available():
            logger.info("Redis is available")
        else:
            logger.warning("Redis is unavailable, caching and rate limiting are disabled")

        yield

        app.state.cache.close()
        app.state.database.dispose()

    app = FastAPI(title="Sweet Shop API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    @app.get("/")
    def read_root():
        return {"message": "Welcome to the Sweet Shop API!"}

    @app.get("/health")
    def health_check(request: Request):
        database_ok = request.app.state.database.is_available()
        return create_response(True, "API is running", {
            "database": "ok" if database_ok else "unavailable",
            "cache": request.app.state.cache.get_cache_info(),
        })

    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(user_router, prefix=API_PREFIX)
    app.include_router(admin_router, prefix=API_PREFIX)
    return app


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        data = getattr(exc, "data", None)
        return error_response(exc.status_code, str(exc.detail), data, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        body_missing = any(
            err.get("type") == "missing" and tuple(err.get("loc", ())) == ("body",)
            for err in exc.errors()
        )
        message = "Request body is required." if body_missing else "Invalid request body."
        return error_response(400, message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, "An unexpected error occurred.")


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
