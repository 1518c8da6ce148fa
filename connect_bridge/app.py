import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from flask import Flask
from flask_cors import CORS

from .config import Config, get_config
from .error_handling import register_error_handlers
from .routes import bp
from .service import OnboardingService

logger = logging.getLogger(__name__)


def configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    log_file = app.config.get('LOG_FILE')
    if log_file and not app.testing:
        package_logger = logging.getLogger(__package__)
        log_path = os.path.abspath(log_file)
        if any(
            isinstance(handler, RotatingFileHandler) and handler.baseFilename == log_path
            for handler in package_logger.handlers
        ):
            return

        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)
        file_handler = RotatingFileHandler(log_file, maxBytes=10240000, backupCount=10)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(level)
        package_logger.addHandler(file_handler)


def create_app(config_class=None, overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """Application factory."""
    app = Flask(__name__)
    app.config.from_object(config_class or get_config())
    if overrides:
        app.config.update(overrides)

    configure_logging(app)

    validation = Config.validate(app.config)
    for warning in validation['warnings']:
        logger.warning(warning)
    if not validation['is_valid']:
        raise ValueError(f"Invalid configuration: {'; '.join(validation['errors'])}")

    CORS(app, origins=app.config['ALLOWED_ORIGINS'])

    app.extensions['connect_bridge'] = OnboardingService.from_config(app.config)
    app.register_blueprint(bp)
    register_error_handlers(app)

    logger.info('Connect bridge startup')
    return app


def main():
    app = create_app()
    app.run(host='0.0.0.0', port=int(app.config.get('PORT') or 3000), threaded=True)


if __name__ == '__main__':
    main()
