import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from school_inventory.config import settings
from school_inventory.db import SessionLocal
from school_inventory.errors import InventoryError
from school_inventory.routers import auth, inventory, stockout, users
from school_inventory.security.csrf import install_csrf_cookie_middleware
from school_inventory.security.sessions import install_auth_session_middleware

logger = logging.getLogger(__name__)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InventoryError)
    async def inventory_error_handler(request: Request, exc: InventoryError):
        if exc.status_code >= 500:
            logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
        return JSONResponse({'error': exc.code, 'detail': exc.message}, status_code=exc.status_code)


def create_app(session_factory=None) -> FastAPI:
    logging.basicConfig(level=settings.log_level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    app = FastAPI(title='School Supplies Inventory')
    app.state.session_factory = session_factory or SessionLocal

    install_error_handlers(app)
    install_csrf_cookie_middleware(app)
    install_auth_session_middleware(app)

    app.include_router(auth.router)
    app.include_router(inventory.router)
    app.include_router(stockout.router)
    app.include_router(users.router)

    @app.get('/health')
    def health() -> dict:
        return {'status': 'ok'}

    return app


app = create_app()
