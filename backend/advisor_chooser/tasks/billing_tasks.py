"""
Celery tasks for scheduled membership billing.

Tasks:
- renew_lapsed_memberships: hourly renewal attempt for lapsed advisors
- send_expiry_notices: daily expiry email + status change
"""
from advisor_chooser.core.celery_app import celery_app
from advisor_chooser.db.base import SessionLocal
from advisor_chooser.services.payments import PaymentService
from advisor_chooser.services.renewal import run_expiry_notices, run_renewal_sweep
from advisor_chooser.services.stripe_gateway import get_gateway


@celery_app.task
def renew_lapsed_memberships():
    """Hourly: try once to renew every lapsed membership with a stored card."""
    with SessionLocal() as db:
        return run_renewal_sweep(db, PaymentService(get_gateway()))


@celery_app.task
def send_expiry_notices():
    """Daily: notify advisors whose membership lapsed and mark it expired."""
    with SessionLocal() as db:
        return run_expiry_notices(db)
