# HealthyMeal API Main Entry Point
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from .errors import error_response, register_error_handlers
from .settings import settings
from .routers.auth import router as auth_router
from .routers.onboarding import router as onboarding_router
from .routers.preferences import router as preferences_router
from .routers.products import router as products_router
from .routers.profile import router as profile_router
from .routers.ready import router as ready_router
from .routers.recipes import limiter, router as recipes_router

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("healthymeal")


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("%s %s: rate limit exceeded (%s)", request.method, request.url.path, exc.detail)
    return error_response("rate_limited", "Too many requests. Please slow down.", 429)


app = FastAPI(title="HealthyMeal API", version="0.1.0")
app.state.limiter = limiter
register_error_handlers(app)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(auth_router, prefix="/api", tags=["auth"])
app.include_router(profile_router, prefix="/api", tags=["profile"])
app.include_router(onboarding_router, prefix="/api", tags=["onboarding"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(products_router, prefix="/api", tags=["products"])
app.include_router(preferences_router, prefix="/api", tags=["preferences"])
