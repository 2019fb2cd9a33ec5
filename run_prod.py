#!/usr/bin/env python3
"""
Production runner for SweetSpot
- Serves the Flask API (sweetspot.app) with waitress
- Loads .env for provider keys and other settings

Usage:
  python3 run_prod.py

Environment:
  PORT=8000 (default)          # Port to bind
  HOST=0.0.0.0 (default)       # Host interface
  MAPBOX_TOKEN=...             # Isochrones (default provider)
  ORS_API_KEY=...              # Isochrones when ISOCHRONE_PROVIDER=ors
  GOOGLE_MAPS_API_KEY=...      # Geocoding and venue search
  BUDGET_SEARCH_STRATEGY=...   # optional: binary | linear
"""

import os
import ssl
from pathlib import Path

from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix

PROJECT_ROOT = Path(__file__).resolve().parent

# Load env from .env if present
load_dotenv(dotenv_path=PROJECT_ROOT / '.env')

from sweetspot.config import configure_logging, get_isochrone_config  # noqa: E402

configure_logging()

from sweetspot.app import app as api_app  # noqa: E402

application = api_app

# Respect reverse proxy headers (X-Forwarded-*) when behind a proxy/HTTPS terminator
if os.getenv('TRUST_PROXY_HEADERS', '1') not in ('0', 'false', 'False', 'no', 'off'):
    # Trust a single proxy hop by default; tune via env
    x_for = int(os.getenv('PROXY_FIX_X_FOR', '1'))
    x_proto = int(os.getenv('PROXY_FIX_X_PROTO', '1'))
    x_host = int(os.getenv('PROXY_FIX_X_HOST', '1'))
    x_port = int(os.getenv('PROXY_FIX_X_PORT', '1'))
    x_prefix = int(os.getenv('PROXY_FIX_X_PREFIX', '1'))
    application = ProxyFix(application, x_for=x_for, x_proto=x_proto, x_host=x_host, x_port=x_port, x_prefix=x_prefix)


def main():
    host = os.getenv('HOST', '0.0.0.0')
    try:
        port = int(os.getenv('PORT', '8000'))
    except ValueError:
        port = 8000

    iso_cfg = get_isochrone_config()
    if not iso_cfg["mapbox_token"] and not iso_cfg["ors_api_key"]:
        print("\n" + "="*60)
        print("Warning: no isochrone provider key (MAPBOX_TOKEN / ORS_API_KEY).")
        print("The API will start, but meeting-zone endpoints return 503.")
        print("Set it in your environment or .env file.")
        print("="*60 + "\n")

    ssl_cert = os.getenv('SSL_CERTFILE') or os.getenv('SSL_CERT')
    ssl_key = os.getenv('SSL_KEYFILE') or os.getenv('SSL_KEY')
    ssl_ca = os.getenv('SSL_CA_FILE') or os.getenv('SSL_CA')

    if ssl_cert and ssl_key:
        print(f"\n🔐 Starting SweetSpot (prod) on https://{host}:{port}")

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        if ssl_ca:
            context.load_verify_locations(ssl_ca)
        context.load_cert_chain(certfile=ssl_cert, keyfile=ssl_key)

        # waitress does not terminate TLS; use Werkzeug's run_simple for HTTPS
        from werkzeug.serving import run_simple
        run_simple(hostname=host, port=port, application=application, ssl_context=context, threaded=True)
    else:
        from waitress import serve
        print(f"\n🚀 Starting SweetSpot (prod) on http://{host}:{port}")
        serve(application, host=host, port=port, threads=int(os.getenv('WSGI_THREADS', '8')))


if __name__ == '__main__':
    main()
