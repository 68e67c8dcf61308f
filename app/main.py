# app/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from requests.exceptions import RequestException
from app.core.config import settings
from app.api.endpoints import gateway, proxy
from app.gateway.state import get_gateway_state
from app.services.listings_api import fetch_active_listings, seed_registry
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed the registry from the listings service, if one is configured."""
    if settings.LISTINGS_API_URL:
        try:
            listings = fetch_active_listings()
            seed_registry(get_gateway_state().registry, listings)
        except (RequestException, ValueError) as e:
            logger.error(f"Could not seed registry from listings API, starting empty: {e}")
    else:
        logger.info("LISTINGS_API_URL not set; registry starts empty")
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:5174"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Gateway-Cost", "X-Gateway-Balance", "X-Gateway-Api"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render errors as {"error": ...} like the proxy responses."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "Missing or invalid fields", "detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the raw input/context objects."""
    return [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


# Management routes first; the proxy catch-all must be last
app.include_router(gateway.router, prefix="/gateway", tags=["gateway"])
app.include_router(proxy.router, tags=["proxy"])
