#!/usr/bin/env python3
"""
nORM - Application Entry Point
Run this file to start the development server
"""
import os

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from norm import create_app, __version__

# Create the application
app = create_app()


if __name__ == '__main__':
    host = os.environ.get('HOST', '0.0.0.0')
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_ENV', 'development') == 'development'

    print(f"""
nORM v{__version__} - Online Reputation Manager

  API:     http://localhost:{port}/api
  Health:  http://localhost:{port}/health

  Environment: {'development' if debug else 'production'}
  Scheduler:   {'on' if os.environ.get('ENABLE_SCHEDULER') == '1' else 'off (use /api/cron/*)'}
    """)

    app.run(host=host, port=port, debug=debug)
