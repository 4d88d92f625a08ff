# src/cabin_khojo/app.py
from flask import Flask
from cabin_khojo.config import get_config
from cabin_khojo.routes import register_routes
from cabin_khojo.utils.database import remove_session
from cabin_khojo.utils.logger import setup_logger

logger = setup_logger(__name__)


def create_app():
    config = get_config()
    app = Flask(__name__)
    app.config.from_object(config)

    register_routes(app)

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        remove_session()

    logger.info(f"Cabin Khojo app created (env={config.FLASK_ENV})")
    return app


def main():
    app = create_app()
    app.run(debug=app.config.get("DEBUG", False))


if __name__ == "__main__":
    main()
