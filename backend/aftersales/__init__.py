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

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


class Services:
    """Per-app wiring of the core services around one session factory."""

    def __init__(self, session_factory, config):
        from .config.sla import SlaPolicy
        from .services.audit import AuditRecorder, utcnow
        from .services.inventory import InventoryLedger
        from .services.notifications import LoggingNotificationSink
        from .services.requests import RequestService
        from .services.sla import SlaEngine
        from .services.spare_part_requests import SparePartRequestService
        from .services.status_guard import StatusTransitionGuard
        from .services.technician_reports import TechnicianReportService

        clock = config.get('CLOCK') or utcnow
        currency = config['DEFAULT_CURRENCY']
        self.session_factory = session_factory
        self.clock = clock
        self.recorder = AuditRecorder(session_factory, clock)
        self.sink = config.get('NOTIFICATION_SINK') or LoggingNotificationSink()
        self.ledger = InventoryLedger(clock, currency)
        self.guard = StatusTransitionGuard(clock)
        self.sla = SlaEngine(SlaPolicy.from_mapping(config), clock)
        self.requests = RequestService(self.sla, self.ledger, clock, currency)
        self.part_requests = SparePartRequestService(clock)
        self.reports = TechnicianReportService(clock)

    def unit_of_work(self):
        from .services.unit_of_work import UnitOfWork
        return UnitOfWork(self.session_factory, self.recorder, self.sink)


def _configure_logging(level_name: str):
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['DEFAULT_CURRENCY'] = os.getenv('DEFAULT_CURRENCY', 'SYP')
    for key in ('SLA_UNDER_WARRANTY_HOURS', 'SLA_OUT_OF_WARRANTY_HOURS', 'SLA_ONSITE_BUFFER_HOURS'):
        if os.getenv(key):
            app.config[key] = os.getenv(key)

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    _configure_logging(app.config['LOG_LEVEL'])

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
    factory = sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False)
    SessionLocal = scoped_session(factory)

    # register every model on the shared metadata
    from .models import users, service_request, spare_part, spare_part_request, technician_report  # noqa: F401

    app.extensions['aftersales'] = Services(factory, app.config)
    app.extensions['aftersales_engine'] = db_engine

    jwt.init_app(app)

    from .routes.requests import requests_bp
    from .routes.request_parts import request_parts_bp
    from .routes.storage import storage_bp
    from .routes.spare_part_requests import spare_part_requests_bp
    from .routes.technician_reports import technician_reports_bp
    app.register_blueprint(requests_bp, url_prefix='/requests')
    app.register_blueprint(request_parts_bp, url_prefix='/request-parts')
    app.register_blueprint(storage_bp, url_prefix='/storage')
    app.register_blueprint(spare_part_requests_bp, url_prefix='/spare-part-requests')
    app.register_blueprint(technician_reports_bp, url_prefix='/technician-reports')

    @app.teardown_appcontext
    def remove_session(exc):  # type: ignore
        if SessionLocal is not None:
            SessionLocal.remove()

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
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

    logger.info('Application created (database=%s)', db_engine.url.render_as_string(hide_password=True))
    return app


def get_db():
    return SessionLocal()


def get_services() -> Services:
    return current_app.extensions['aftersales']


def unit_of_work():
    return get_services().unit_of_work()
