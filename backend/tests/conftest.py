import os, sys, pytest
# Ensure the backend directory is on path so 'aftersales' and 'seeds' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from aftersales import create_app
from aftersales.models.users import Base
# Import all model modules to ensure tables are registered before create_all
import aftersales.models.service_request  # noqa: F401
import aftersales.models.spare_part  # noqa: F401
import aftersales.models.spare_part_request  # noqa: F401
import aftersales.models.technician_report  # noqa: F401
from aftersales.services.audit import AuditRecorder
from aftersales.services.unit_of_work import UnitOfWork

TEST_JWT_SECRET = 'test-secret-key-that-is-long-enough-for-hs256'


class RecordingSink:
    """Notification sink that keeps every delivered intent."""

    def __init__(self):
        self.delivered = []

    def deliver(self, intent):
        self.delivered.append(intent)

    def recipients(self, type_=None):
        return sorted(i.recipient_user_id for i in self.delivered if type_ is None or i.type == type_)

    def clear(self):
        self.delivered.clear()


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def sink():
    return RecordingSink()


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def app_instance(sink, clock):
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': TEST_JWT_SECRET,
        'NOTIFICATION_SINK': sink,
        'CLOCK': clock,
        'TESTING': True,
    })
    Base.metadata.create_all(app.extensions['aftersales_engine'])
    yield app
    app.extensions['aftersales_engine'].dispose()


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def app_factory(app_instance):
    """Session factory bound to the app's database, for seeding and assertions."""
    return app_instance.extensions['aftersales'].session_factory


@pytest.fixture()
def session_factory():
    engine = create_engine(
        'sqlite+pysqlite:///:memory:',
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    engine.dispose()


@pytest.fixture()
def recorder(session_factory, clock):
    return AuditRecorder(session_factory, clock)


@pytest.fixture()
def uow(session_factory, recorder, sink):
    """Callable returning a fresh unit of work on the service-level database."""
    return lambda: UnitOfWork(session_factory, recorder, sink)
