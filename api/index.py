# =============================================================================
# TripFlow - Vercel Serverless Entry Point
# Flask WSGI Application wrapper for Vercel Python Runtime
# =============================================================================

import os
import sys

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tripflow import create_app  # noqa: E402

# Vercel Python runtime expects 'app' to be a WSGI application
app = create_app(os.environ.get('FLASK_ENV', 'production'))
