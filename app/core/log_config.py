import logging

from app.core.config import settings


def configure_logging() -> None:
    """One root handler for the API process and the CLI jobs."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
