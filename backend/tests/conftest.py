import os, sys, pytest
from datetime import datetime, timedelta
# Ensure backend directory is on path so 'distribution' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from distribution import create_app, get_db
from distribution.models.base import Base
from distribution.services.notifications import Notifier
# Import all model modules to ensure tables are registered before create_all
import distribution.models.audit  # noqa: F401
import distribution.models.order  # noqa: F401
import distribution.models.preparation_item  # noqa: F401
import distribution.models.delivery_staff  # noqa: F401
import distribution.models.delivery_assignment  # noqa: F401

T0 = datetime(2026, 1, 5, 12, 0, 0)


class ManualClock:
    """Clock the tests move by hand; deadlines pass without sleeping."""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.current = self.current + timedelta(minutes=minutes, seconds=seconds)
        return self.current


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events = []

    def notify_courier(self, staff_id, order_id, event, payload=None):
        self.events.append(('courier', staff_id, order_id, event, payload or {}))

    def notify_customer(self, order, event, payload=None):
        self.events.append(('customer', order.customer_id, order.id, event, payload or {}))

    def notify_branch(self, branch_id, order_id, event, payload=None):
        self.events.append(('branch', branch_id, order_id, event, payload or {}))

    def names(self):
        return [e[3] for e in self.events]


CLOCK = ManualClock(T0)
NOTIFIER = RecordingNotifier()


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'CLOCK': CLOCK,
        'NOTIFIER': NOTIFIER,
    })
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture(autouse=True)
def clean_state(app_instance):
    CLOCK.current = T0
    NOTIFIER.events.clear()
    yield
    session = get_db()
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.expunge_all()


@pytest.fixture()
def clock():
    return CLOCK


@pytest.fixture()
def notifier():
    return NOTIFIER


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
