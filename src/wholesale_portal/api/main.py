from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .. import __version__
from ..exceptions import PortalError
from .pricing_api import router as pricing_router
from .products_api import router as products_router
from .quotes_api import router as quotes_router
from .state import get_state, PortalState

app = FastAPI(
    title="Wholesale Portal API",
    description="Pricing engine and quote lifecycle for the B2B wholesale portal",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pricing_router)
app.include_router(quotes_router)
app.include_router(products_router)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = ', '.join('.'.join(str(p) for p in err['loc'][1:]) or 'body' for err in exc.errors())
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {fields}"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on {} {}", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
async def root():
    return {"status": "online", "message": "Wholesale Portal API Active"}


@app.get("/system/status")
async def get_status(state: PortalState = Depends(get_state)):
    settings = state.settings
    return {
        "engine_active": True,
        "price_lists_loaded": len(state.price_lists.all()),
        "products_loaded": len(state.catalog.list_products()),
        "quotes_count": state.quotes.count(),
        "orders_count": len(state.orders.all()),
        "discount_precedence": settings.discount_precedence,
        "started_at": state.started_at.isoformat(),
    }
