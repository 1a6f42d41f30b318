from flask import Flask, current_app
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import logging
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['DEFAULT_ACCEPT_TIMEOUT_MINUTES'] = int(os.getenv('DEFAULT_ACCEPT_TIMEOUT_MINUTES', '5'))
    app.config['DEFAULT_EXPECTED_DELIVERY_MINUTES'] = int(os.getenv('DEFAULT_EXPECTED_DELIVERY_MINUTES', '30'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    # Anything with now() returning naive UTC; tests install a manual clock.
    app.config['CLOCK'] = None
    app.config['NOTIFIER'] = None

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    logging.basicConfig(format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app.logger.setLevel(app.config['LOG_LEVEL'])
    logging.getLogger('distribution').setLevel(app.config['LOG_LEVEL'])

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .routes.orders import orders_bp
    from .routes.distribution import dist_bp
    from .routes.staff import staff_bp
    app.register_blueprint(orders_bp, url_prefix='/orders')
    app.register_blueprint(dist_bp, url_prefix='/distribution')
    app.register_blueprint(staff_bp, url_prefix='/distribution')  # courier registry lives beside the board

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.teardown_appcontext
    def remove_session(exc=None):
        SessionLocal.remove()

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        SessionLocal().rollback()
        from .errors import DistributionError
        if isinstance(e, DistributionError):
            app.logger.info('%s: %s', e.kind, e.description)
            return {'error': e.to_dict()}, e.code
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    from .openapi_builder import build_openapi_spec

    @app.route('/openapi.json')
    def openapi_spec():
        return build_openapi_spec()

    @app.route('/docs')
    def docs_index():
        # Lightweight HTML referencing Redoc CDN (no local install) for quick browsing
        return (
            "<!DOCTYPE html><html><head><title>Distribution API Docs</title>"
            "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
            "</head><body><redoc spec-url='/openapi.json'></redoc>"
            "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
            "</body></html>"
        )

    return app


def get_db():
    return SessionLocal()


def get_clock():
    from .utils.clock import SystemClock
    return current_app.config.get('CLOCK') or SystemClock()


def get_notifier():
    from .services.notifications import LogNotifier
    notifier = current_app.config.get('NOTIFIER')
    return notifier if notifier is not None else LogNotifier()
