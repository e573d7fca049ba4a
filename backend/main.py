from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import config
from backend.logger import logger
from backend.routers import auth, core, forms, registrations
from database.db import create_tables


def enforce_startup_config() -> None:
    violations = config.validate_startup_config()
    if not violations:
        return
    for violation in violations:
        logger.error("Startup check failed: %s", violation)
    raise SystemExit(1)


@asynccontextmanager
async def lifespan(app: FastAPI):
    enforce_startup_config()
    create_tables()
    logger.info("Database ready at %s", config.DB_PATH)
    yield


app = FastAPI(title="Ticketdesk API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=config.CORS_ALLOW_CREDENTIALS,
    allow_methods=config.CORS_ALLOW_METHODS,
    allow_headers=config.CORS_ALLOW_HEADERS,
)

app.include_router(core.router)
app.include_router(auth.router)
# public routes first so /forms/published is not taken as a form id
app.include_router(forms.router)
app.include_router(forms.admin)
app.include_router(registrations.router)
app.include_router(registrations.admin)


def main() -> None:
    # exits with status 1 before binding the port
    enforce_startup_config()

    import uvicorn

    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
