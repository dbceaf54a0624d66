import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from gateway.core.config import Settings, get_settings, validate_runtime_config
from gateway.core.errors import ConfigurationError, ExpiredToken, GatewayError, InvalidCredentials, UpstreamUnavailable
from gateway.core.logging import configure_logging
from gateway.database import build_engine, build_session_factory, init_schema
from gateway.routes import admin_routes, auth_routes, saml_routes, sso_routes, user_routes

logger = logging.getLogger(__name__)


def gateway_error_response(exc: GatewayError) -> JSONResponse:
    content = {'message': exc.message, 'code': exc.code}
    headers = {'WWW-Authenticate': 'Bearer'} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
    if isinstance(exc, ConfigurationError):
        logger.error('Configuration error on %s: %s', request.url.path, exc.detail)
    elif isinstance(exc, UpstreamUnavailable):
        logger.error('Upstream failure on %s: %s', request.url.path, exc.detail)
    elif isinstance(exc, (InvalidCredentials, ExpiredToken)):
        logger.info('Rejected %s: %s', request.url.path, exc.detail)
    else:
        logger.warning('Rejected %s: %s', request.url.path, exc.detail)
    return gateway_error_response(exc)


def handle_database_unavailable(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database unavailable while serving %s', request.url.path)
    return gateway_error_response(UpstreamUnavailable(str(exc)))


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    validate_runtime_config(settings)

    app = FastAPI(title='SSO Gateway', version='1.0.0')
    app.state.engine = build_engine(settings)
    app.state.session_factory = build_session_factory(app.state.engine)
    app.dependency_overrides[get_settings] = lambda: settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.CORS_ORIGINS),
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    app.add_exception_handler(GatewayError, handle_gateway_error)
    app.add_exception_handler(OperationalError, handle_database_unavailable)
    app.add_exception_handler(PoolTimeoutError, handle_database_unavailable)

    @app.on_event('startup')
    def initialize_database() -> None:
        try:
            init_schema(app.state.engine)
        except SQLAlchemyError:
            logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

    @app.get('/')
    def root():
        return {'status': 'SSO Gateway Running'}

    app.include_router(auth_routes.router, prefix='/api/auth')
    app.include_router(user_routes.router, prefix='/api/user')
    app.include_router(saml_routes.router, prefix='/api/saml')
    app.include_router(sso_routes.router, prefix='/api/sso')
    app.include_router(admin_routes.router, prefix='/api/admin')
    return app


app = create_app()
