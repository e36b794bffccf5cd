from fastapi import FastAPI

from existinfra import __version__
from existinfra.api.middleware import AuthMiddleware
from existinfra.api.routes import health, plans


def create_app(api_key: str = None) -> FastAPI:
    app = FastAPI(title="existinfra", version=__version__)
    app.add_middleware(AuthMiddleware, token=api_key)
    app.include_router(health.router)
    app.include_router(plans.router)
    return app


app = create_app()
