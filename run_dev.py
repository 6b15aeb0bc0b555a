#!/usr/bin/env python3
"""
Offer Kit - Development Runner
Run this script to start the development server
"""

import os
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Set environment defaults
os.environ.setdefault('FLASK_APP', 'offerkit')
os.environ.setdefault('FLASK_ENV', 'development')

from offerkit import create_app


def main():
    """Main entry point"""
    print("=" * 60)
    print("Offer Kit - Development Server")
    print("=" * 60)

    app = create_app()

    print(f"Environment: {app.config.get('FLASK_ENV', 'unknown')}")
    print(f"Debug mode: {app.config.get('DEBUG', False)}")
    print(f"Log level: {app.config.get('LOG_LEVEL', 'INFO')}")
    print(f"Storage: {Path(app.config['STORAGE_ROOT']).resolve()}")
    print(f"Catalog: {app.config['CATALOG_BASE_URL']}")

    if not Path('config/settings.yaml').exists():
        print("Missing config/settings.yaml, running on built-in defaults")

    if not app.config.get('CATALOG_CONTEXT_ID'):
        print("CATALOG_CONTEXT_ID is not set; product lookups may be rejected")

    print("-" * 60)
    print("Starting development server on http://localhost:5000")
    print("Press Ctrl+C to stop")
    print("-" * 60)

    app.run(
        host='0.0.0.0',
        port=5000,
        debug=app.config.get('DEBUG', True),
        use_reloader=True,
        threaded=True
    )


if __name__ == '__main__':
    main()
