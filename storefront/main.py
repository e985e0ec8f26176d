from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from storefront.version import VERSION
from storefront.api import inventory, notifications, orders, payments, products, vouchers
from storefront.core import errors
from storefront.core.logging import get_logger
from storefront.services.payos import webhook_verification_ready

log = get_logger("main")

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title='Storefront Service', version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

# Map exception types to HTTP status codes; subclasses resolve through the MRO
ERROR_STATUS_CODES: dict[type, int] = {
    errors.ValidationError: 400,
    errors.Forbidden: 403,
    errors.NotFound: 404,
    errors.InsufficientStock: 409,
    errors.ProductUnavailable: 409,
    errors.DuplicateEntity: 409,
    errors.ExternalServiceError: 502,
    errors.IntegrityError: 500,
}

def status_for(exc: errors.StorefrontError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500

@app.exception_handler(errors.StorefrontError)
async def storefront_error_handler(request: Request, exc: errors.StorefrontError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )

@app.get('/health')
def health(): return {'status':'ok'}

@app.get('/v1/_info')
def info(): return {'service':'storefront','version':VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            log.debug("route %s %s", sorted(route.methods), route.path)
    webhook_verification_ready()

app.include_router(products.router,      prefix='/catalog/v1/products', tags=['products'])
app.include_router(inventory.router,     prefix='/catalog',             tags=['inventory'])
app.include_router(vouchers.router,      prefix='/order/v1/vouchers',   tags=['vouchers'])
app.include_router(orders.router,        prefix='/order',               tags=['orders'])
app.include_router(payments.router,      prefix='/payment',             tags=['payments'])
app.include_router(notifications.router, prefix='/notifications',       tags=['notifications'])
