from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from inventory_ledger.core import get_logger
from inventory_ledger.domain.errors import InventoryError

logger = get_logger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}",
            extra={'extra_fields': {'error': type(exc).__name__, 'status_code': exc.status_code}},
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
