#!/usr/bin/env python3
"""
Main entry point for the SweetSpot API (Flask development server)
"""

from sweetspot.config import configure_logging, get_server_address

configure_logging()

from sweetspot.app import app  # noqa: E402

if __name__ == '__main__':
    host, port = get_server_address()
    app.run(debug=True, host=host, port=port)
