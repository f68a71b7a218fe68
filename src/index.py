"""
API helper entry point. JSON envelope REST API over MySQL; run behind HTTPS in production.
Run from project root: python run.py
"""
import logging
import sys

from flask import Flask

import config
from api import Api
from routes.status_routes import blueprint as status_bp

logging.basicConfig(stream=sys.stderr, level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(params=None):
    app = Flask(__name__)
    Api(app, config.api_params() if params is None else params)
    app.register_blueprint(status_bp)
    return app


def main():
    app = create_app()
    api = app.extensions["api"]
    with app.app_context():
        try:
            for name in api.databases:
                if api.db(name).connect() is None:
                    logger.error("Database connection failed: %s", name)
                    sys.exit(1)
        except Exception as e:
            logger.error("Database connection failed: %s", e)
            sys.exit(1)
    app.run(host="0.0.0.0", port=config.PORT, debug=(config.SERVER_ENV == "development"))


if __name__ == "__main__":
    main()
