"""
Configuration management for the offer toolkit
Loads settings from YAML files with environment variable overrides
"""

import os
import yaml
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, Field
from loguru import logger


DEFAULT_TERMS = [
    "Offerten gäller i 30 dagar från utställningsdatum",
    "Leveranstid: 2-3 veckor från godkänd beställning",
    "Betalningsvillkor: 30 dagar netto",
    "Alla priser anges inklusive moms där inget annat anges",
]


class AppConfig(BaseModel):
    """Main application configuration"""

    # Flask settings
    SECRET_KEY: str = Field(default_factory=lambda: os.urandom(24).hex())
    FLASK_ENV: str = "development"
    DEBUG: bool = True

    # Paths
    STORAGE_ROOT: str = "storage"
    STORAGE_BASE_URL: str = "http://localhost:5000"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    # Logo uploads
    MAX_LOGO_SIZE: int = 5 * 1024 * 1024  # 5MB
    ALLOWED_LOGO_EXTENSIONS: List[str] = [".png", ".jpg", ".jpeg", ".webp", ".gif"]

    # Compositor
    CANVAS_SIZE: Tuple[int, int] = (400, 400)
    OVERLAY_SIZE: int = 80
    OVERLAY_INSET: int = 20
    NEUTRAL_FILL: str = "#f0f0f0"

    # Image loading
    IMAGE_TIMEOUT_MS: int = 5000

    # Pricing
    TAX_RATE: float = 0.25
    DEFAULT_MARGIN_PERCENT: Optional[float] = 25.0

    # Catalog
    CATALOG_BASE_URL: str = "https://commerce.gateway.nwg.se/assortment/sv"
    CATALOG_CONTEXT_ID: Optional[str] = None
    CATALOG_TIMEOUT_S: float = 10.0
    CATALOG_MEDIA_HOST: str = "https://media.nwgmedia.com/"

    # Buckets
    LOGO_BUCKET: str = "Logos"
    MOCKUP_BUCKET: str = "Mockups"
    OFFER_BUCKET: str = "Offers"

    # Offer document
    COMPANY_NAME: str = "Kosta Nada Profil AB"
    COMPANY_LOGO: Optional[str] = None
    QUOTE_PREFIX: str = "OFF"
    TERMS: List[str] = DEFAULT_TERMS


def load_yaml_config(file_path: str) -> Dict:
    """Load configuration from YAML file"""
    path = Path(file_path)
    if not path.exists():
        logger.warning(f"Config file not found: {file_path}")
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except Exception as e:
        logger.error(f"Error loading config file {file_path}: {e}")
        return {}


def load_config(environment: str = "development", config_dir: str = "config") -> AppConfig:
    """Load configuration with environment-specific overrides"""

    base_config = load_yaml_config(f"{config_dir}/settings.yaml")
    env_config = load_yaml_config(f"{config_dir}/settings_{environment}.yaml")

    # env file overrides base file
    config_dict = {**base_config, **env_config}

    env_overrides = {
        'SECRET_KEY': os.getenv('SECRET_KEY'),
        'FLASK_ENV': os.getenv('FLASK_ENV', environment),
        'LOG_LEVEL': os.getenv('LOG_LEVEL'),
        'STORAGE_ROOT': os.getenv('STORAGE_ROOT'),
        'STORAGE_BASE_URL': os.getenv('STORAGE_BASE_URL'),
        'CATALOG_BASE_URL': os.getenv('CATALOG_BASE_URL'),
        'CATALOG_CONTEXT_ID': os.getenv('CATALOG_CONTEXT_ID'),
        'COMPANY_NAME': os.getenv('COMPANY_NAME'),
    }

    env_overrides = {k: v for k, v in env_overrides.items() if v is not None}
    config_dict.update(env_overrides)

    if 'FLASK_ENV' in config_dict:
        config_dict['DEBUG'] = config_dict['FLASK_ENV'] == 'development'

    try:
        return AppConfig(**config_dict)
    except Exception as e:
        logger.error(f"Configuration validation error: {e}")
        return AppConfig()

