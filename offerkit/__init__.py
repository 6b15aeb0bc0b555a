"""
Offer Kit - Flask Application Factory
Product lookup, logo mockups and offer PDFs for promotional products sales
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from flask import Flask
from loguru import logger
from dotenv import load_dotenv

from .catalog import CatalogClient
from .compositor import ImageCompositor
from .config import AppConfig, load_config
from .document import OfferDocumentBuilder
from .loader import ImageLoader
from .mockups import MockupService
from .storage import BlobStore, LocalBlobStore


__version__ = "1.0.0"


@dataclass
class Services:
    """Collaborators shared by the request handlers of one app"""
    config: AppConfig
    store: BlobStore
    loader: ImageLoader
    catalog: CatalogClient
    mockups: MockupService
    documents: OfferDocumentBuilder


def build_services(config: AppConfig, store: BlobStore = None, loader: ImageLoader = None,
                   catalog: CatalogClient = None) -> Services:
    store = store or LocalBlobStore(config.STORAGE_ROOT, config.STORAGE_BASE_URL)
    loader = loader or ImageLoader(config.IMAGE_TIMEOUT_MS)
    compositor = ImageCompositor(
        loader,
        canvas_size=tuple(config.CANVAS_SIZE),
        overlay_size=config.OVERLAY_SIZE,
        inset=config.OVERLAY_INSET,
        fill_color=config.NEUTRAL_FILL,
    )
    return Services(
        config=config,
        store=store,
        loader=loader,
        catalog=catalog or CatalogClient.from_config(config),
        mockups=MockupService(
            compositor, store,
            logo_bucket=config.LOGO_BUCKET,
            mockup_bucket=config.MOCKUP_BUCKET,
            max_logo_size=config.MAX_LOGO_SIZE,
            allowed_extensions=config.ALLOWED_LOGO_EXTENSIONS,
        ),
        documents=OfferDocumentBuilder.from_config(config, loader=loader, store=store),
    )


def create_app(config_name: str = None, config_overrides: Dict[str, Any] = None, **services):
    """Flask application factory"""

    # Load environment variables
    load_dotenv()

    app = Flask(__name__)

    environment = config_name or os.getenv('FLASK_ENV', 'development')
    config = load_config(environment)
    if config_overrides:
        config = AppConfig(**{**config.model_dump(), **config_overrides})

    app.config.update(config.model_dump())
    if config_overrides:
        app.config.update(config_overrides)
    app.config['MAX_CONTENT_LENGTH'] = config.MAX_LOGO_SIZE + 1024 * 1024

    # Configure logging
    setup_logging(app)

    # Ensure storage directories exist
    setup_directories(app)

    app.extensions['offerkit'] = build_services(config, **services)

    # Register blueprints
    from . import routes
    app.register_blueprint(routes.bp)

    logger.info(f"Offer Kit initialized in {environment} mode")

    return app


def setup_logging(app):
    """Configure loguru logging"""
    log_level = app.config.get('LOG_LEVEL', 'INFO')
    log_file = app.config.get('LOG_FILE', 'logs/app.log')

    # Ensure logs directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_file,
        rotation="1 day",
        retention="30 days",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )


def setup_directories(app):
    """Ensure required directories exist"""
    dirs = [
        app.config.get('STORAGE_ROOT', 'storage'),
    ]

    for dir_path in dirs:
        Path(dir_path).mkdir(parents=True, exist_ok=True)
