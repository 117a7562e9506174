import os
import sys

import pytest

# Path setup before any project imports to satisfy E402
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)

ADMIN_KEY = "admin-api-key"
USER_KEY = "user-api-key"


def _lazy_imports():  # isolate heavy imports & satisfy lint ordering
    from extended_api.app_factory import create_app  # noqa: E402
    from extended_api.db import create_all, get_session  # noqa: E402
    from extended_api import models  # noqa: E402

    return create_app, create_all, get_session, models


@pytest.fixture
def app(tmp_path):
    create_app, create_all, get_session, models = _lazy_imports()
    url = f"sqlite:///{tmp_path / 'test_app.db'}"
    app = create_app({"TESTING": True, "SECRET_KEY": "test", "database_url": url})
    with app.app_context():
        create_all()
        db = get_session()
        try:
            admin = models.User(login="admin", firstname="Ada", lastname="Admin", api_key=ADMIN_KEY, admin=True)
            user = models.User(login="jsmith", firstname="John", lastname="Smith", api_key=USER_KEY)
            other = models.User(login="dlopper", firstname="Dave", lastname="Lopper")
            new = models.IssueStatus(name="New", position=1)
            closed = models.IssueStatus(name="Closed", is_closed=True, position=2)
            db.add_all([admin, user, other, new, closed])
            db.flush()
            bug = models.Tracker(name="Bug", default_status_id=new.id, position=1)
            normal = models.Enumeration(type="IssuePriority", name="Normal", position=1, is_default=True)
            high = models.Enumeration(type="IssuePriority", name="High", position=2)
            project = models.Project(name="eCookbook", identifier="ecookbook")
            db.add_all([bug, normal, high, project])
            db.commit()
            app.config["SEED"] = {
                "admin_id": admin.id,
                "user_id": user.id,
                "other_id": other.id,
                "status_new": new.id,
                "status_closed": closed.id,
                "tracker_bug": bug.id,
                "priority_normal": normal.id,
                "priority_high": high.id,
                "project_id": project.id,
            }
        finally:
            db.close()
    return app


@pytest.fixture
def seed(app):
    return app.config["SEED"]


@pytest.fixture
def client(app):
    c = app.test_client()
    c.environ_base = {}
    return c


@pytest.fixture
def admin_headers():
    return {"X-Api-Key": ADMIN_KEY}


@pytest.fixture
def user_headers():
    return {"X-Api-Key": USER_KEY}


@pytest.fixture
def db_session(app):
    from extended_api.db import get_session

    with app.app_context():
        db = get_session()
        try:
            yield db
        finally:
            db.close()


@pytest.fixture(autouse=True)
def _reset_buffers():
    from extended_api.audit_events import clear_audit_events
    from extended_api.metrics import reset_metrics
    from extended_api.notifications import clear_outbox

    clear_audit_events()
    clear_outbox()
    reset_metrics()
    yield
    clear_audit_events()
    clear_outbox()
    reset_metrics()


@pytest.fixture
def create_issue(client, admin_headers):
    """POST a minimal issue natively and return its JSON."""

    def _create(subject: str = "Cannot print recipes", **attrs):
        payload = {"issue": {"subject": subject, **attrs}}
        resp = client.post("/issues.json", json=payload, headers=admin_headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["issue"]

    return _create
