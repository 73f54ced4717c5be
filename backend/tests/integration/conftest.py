"""
Shared fixtures for API integration tests.

Authentication, the database session and the Stripe gateway are replaced via
app.dependency_overrides.
"""
import pytest
from fastapi.testclient import TestClient

from advisor_chooser.core.auth import get_current_user
from advisor_chooser.db.base import get_db
from advisor_chooser.main import app
from advisor_chooser.services.stripe_gateway import get_gateway


@pytest.fixture
def client_for(db, gateway):
    """Build a TestClient authenticated as the given user (or anonymous)."""

    def _client(user=None):
        def override_get_db():
            yield db

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_gateway] = lambda: gateway
        if user is not None:
            app.dependency_overrides[get_current_user] = lambda: user
        else:
            app.dependency_overrides.pop(get_current_user, None)
        return TestClient(app)

    yield _client

    app.dependency_overrides.clear()
