import logging

from flask import request

from flask_app.app import create_app
from ptel_engine.config import configure_logging

LOG = logging.getLogger(__name__)


def main():
    configure_logging("DEBUG")
    app = create_app()

    # ✅ Log every request Flask processes
    @app.before_request
    def log_request():
        LOG.debug(f"🔹 Flask received request: {request.method} {request.path}")

    LOG.info("✅ Flask is running in DEBUG mode. Logging all requests.")
    app.run(debug=True)


if __name__ == '__main__':
    main()
