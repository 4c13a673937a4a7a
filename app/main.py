from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog
from .logging import setup_logging
from .config import settings
from .errors import NotFoundError, PortfolioError, PriceFeedError, StorageError, ValidationError
from .storage import build_store
from .pipeline.session import PortfolioSession
from .providers.coingecko_adapter import CoinGeckoAdapter
from .scheduler import schedule_jobs, shutdown_scheduler
from .api.routes import router, api

log = structlog.get_logger()

_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (PriceFeedError, 502),
    (StorageError, 500),
)

def _status_for(exc: PortfolioError) -> int:
    for cls, code in _STATUS:
        if isinstance(exc, cls):
            return code
    return 500

def create_app(session: PortfolioSession | None = None, adapter=None, start_scheduler: bool | None = None) -> FastAPI:
    if start_scheduler is None:
        start_scheduler = bool(settings.price_refresh_enabled) and session is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.session is None:
            app.state.session = PortfolioSession.from_settings(build_store(settings), settings)
        if start_scheduler:
            schedule_jobs(app.state.session, app.state.price_adapter)
        yield
        if start_scheduler:
            shutdown_scheduler()

    app = FastAPI(title="crypto-portfolio-service", lifespan=lifespan)
    app.state.session = session
    app.state.price_adapter = adapter or CoinGeckoAdapter(
        enabled=bool(settings.coingecko_enable),
        timeout=settings.http_timeout_seconds,
        base_url=settings.coingecko_base_url,
    )
    app.state.site_password = settings.site_password

    @app.exception_handler(PortfolioError)
    async def portfolio_error_handler(request: Request, exc: PortfolioError):
        status = _status_for(exc)
        if status >= 500:
            log.error("request_failed", path=request.url.path, status=status, err=str(exc))
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    app.include_router(router)
    app.include_router(api)
    return app

setup_logging()
app = create_app()
