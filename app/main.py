from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.bulk_uploads.router import router as bulk_uploads_router
from app.core.log_config import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Enrollment Backend")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(bulk_uploads_router)

    return app


app = create_app()
