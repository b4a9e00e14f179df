import logging
import secrets
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from app.api.deps import get_session_registry
from app.api.routers import auth, feed, pages
from app.core.config import get_settings
from app.core.exceptions import FeedError
from app.core.logging_config import setup_logging

# --- Application Setup ---
setup_logging()  # Initialize logging first
settings = get_settings()
app = FastAPI(
    title="ssaavvee Feed API",
    description="Email/password accounts, category-tagged short posts and live-updating feeds.",
    version="1.0.0",
)
logger = logging.getLogger(__name__)

# --- Exception Handlers ---
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Custom validation error response for clarity
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "errors": exc.errors()},
    )

@app.exception_handler(FeedError)
async def feed_exception_handler(request: Request, exc: FeedError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

# --- Session Cookie ---
@app.middleware("http")
async def session_cookie_middleware(request: Request, call_next):
    """
    Binds every request to a browser session. Unknown or missing cookies get a
    fresh id, so a client cannot pick the id of a session it did not create.
    """
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    issued = False
    if not session_id or get_session_registry().get(session_id) is None:
        session_id = secrets.token_urlsafe(32)
        issued = True
    request.state.session_id = session_id
    response = await call_next(request)
    if issued:
        response.set_cookie(settings.SESSION_COOKIE_NAME, session_id, httponly=True, samesite="lax")
    return response

# --- Routers ---
app.include_router(pages.router, tags=["Pages"])
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(feed.router, prefix="/api/v1/feed", tags=["Feed"])

# --- Lifecycle Events ---
@app.on_event("startup")
async def startup_event():
    logger.info("--- Starting FastAPI application ---")
    logger.info(f"Log level set to: {settings.LOG_LEVEL}")
    logger.info(f"Backend provider: {settings.BACKEND_PROVIDER}")
    if settings.BACKEND_PROVIDER.lower() == "memory":
        logger.warning("Using the in-memory backend; accounts and posts are lost on restart.")
    logger.info("Application startup complete.")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("--- Shutting down FastAPI application ---")
    # Releases every live subscription still held by a dashboard.
    get_session_registry().close_all()
