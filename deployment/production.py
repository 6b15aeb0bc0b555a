#!/usr/bin/env python3
"""
Production deployment configuration for Offer Kit.

Builds the WSGI application with production settings and serves it with
waitress.
"""

import os
import sys
from pathlib import Path
from typing import Any, Dict, List

from loguru import logger


def production_overrides() -> Dict[str, Any]:
    return {
        'SECRET_KEY': os.environ.get('SECRET_KEY', 'production-secret-key-change-me'),
        'DEBUG': False,
        'TESTING': False,
        'STORAGE_ROOT': os.environ.get('STORAGE_ROOT', '/var/lib/offerkit/storage'),
        'STORAGE_BASE_URL': os.environ.get('STORAGE_BASE_URL', 'http://localhost:8000'),
        'LOG_FILE': os.environ.get('LOG_FILE', '/var/log/offerkit/app.log'),
        'LOG_LEVEL': os.environ.get('LOG_LEVEL', 'INFO'),
    }


def create_production_app():
    """Create production Flask application with proper configuration."""
    os.environ['FLASK_ENV'] = 'production'

    # Import after setting environment
    from offerkit import create_app

    config = production_overrides()
    for directory in (config['STORAGE_ROOT'], Path(config['LOG_FILE']).parent):
        Path(directory).mkdir(parents=True, exist_ok=True)

    return create_app('production', config)


def check_production_requirements() -> List[str]:
    """Check that production requirements are met."""
    errors = []

    if not os.environ.get('SECRET_KEY'):
        errors.append("Environment variable SECRET_KEY is required")

    if not os.environ.get('CATALOG_CONTEXT_ID'):
        errors.append("Environment variable CATALOG_CONTEXT_ID is required")

    storage_root = Path(os.environ.get('STORAGE_ROOT', '/var/lib/offerkit/storage'))
    try:
        storage_root.mkdir(parents=True, exist_ok=True)
        probe = storage_root / '.write_test'
        probe.write_text('test')
        probe.unlink()
    except OSError:
        errors.append(f"No write permission to storage root: {storage_root}")

    return errors


if __name__ == '__main__':
    errors = check_production_requirements()
    if errors:
        print("Production requirements not met:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)

    from waitress import serve

    app = create_production_app()

    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', '8000'))
    threads = int(os.environ.get('THREADS', '4'))

    logger.info(f"Starting Offer Kit on {host}:{port} with {threads} threads")

    try:
        serve(
            app,
            host=host,
            port=port,
            threads=threads,
            channel_timeout=120,
            cleanup_interval=30,
            connection_limit=1000,
            url_scheme='https' if os.environ.get('HTTPS', '').lower() == 'true' else 'http'
        )
    except KeyboardInterrupt:
        logger.info("Shutting down")
