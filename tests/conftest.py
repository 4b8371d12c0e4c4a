# =============================================================================
# TripFlow - Pytest Fixtures Configuration
# =============================================================================

import pytest
from datetime import date, timedelta
from decimal import Decimal

from tripflow import create_app
from tripflow.extensions import db
from tripflow.models.user import UserProfile
from tripflow.models.subscription import Subscription
from tripflow.models.trip import Trip, TripStatus
from tripflow.models.expense_note import ExpenseNote, ExpenseCategory
from tripflow.services.plan_service import PlanService
from tripflow.services.plans import PlanType, SubscriptionStatus
from tripflow.utils.timezone import utcnow


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture(scope='function')
def app():
    """Create and configure test application with SQLite in-memory database."""
    application = create_app('testing')

    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Test client for HTTP requests."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    """CLI test runner."""
    return app.test_cli_runner()


# =============================================================================
# User Fixtures
# =============================================================================

def _make_user(uid, email, plan_id=PlanType.FREE, status=SubscriptionStatus.ACTIVE,
               trips_used=0, created_at=None, with_subscription=True):
    user = UserProfile(
        uid=uid,
        email=email,
        first_name='Marie',
        last_name='Curie',
        display_name='Marie Curie',
        contract_number='CTR-001',
        created_at=created_at or utcnow(),
    )
    db.session.add(user)
    if with_subscription:
        value = PlanService.create_default_subscription()
        sub = Subscription(user_id=uid)
        sub.apply(value)
        sub.plan_id = plan_id
        sub.status = status
        sub.trips_used = trips_used
        db.session.add(sub)
    db.session.commit()
    db.session.expire_all()
    return db.session.get(UserProfile, uid)


@pytest.fixture
def free_user(app):
    """Free plan user with no trips, account created today."""
    return _make_user('user-free', 'free@test.com')


@pytest.fixture
def full_free_user(app):
    """Free plan user who used the whole quota (10/10)."""
    return _make_user('user-full', 'full@test.com', trips_used=10,
                      created_at=utcnow() - timedelta(days=30))


@pytest.fixture
def pro_user(app):
    """Pro Individuel user, far above the free quota."""
    return _make_user('user-pro', 'pro@test.com', plan_id=PlanType.PRO_INDIVIDUAL,
                      trips_used=42, created_at=utcnow() - timedelta(days=60))


@pytest.fixture
def legacy_user(app):
    """Profile created before subscriptions existed."""
    return _make_user('user-legacy', 'legacy@test.com', with_subscription=False,
                      created_at=utcnow() - timedelta(days=400))


# =============================================================================
# Trip Fixtures
# =============================================================================

@pytest.fixture
def trip_data():
    """Validated trip creation fields."""
    return {
        'name': 'Salon Lyon',
        'destination': 'Lyon',
        'purpose': 'Salon professionnel',
        'departure_date': date(2026, 3, 10),
        'return_date': date(2026, 3, 12),
        'remarks': None,
    }


@pytest.fixture
def sample_trip(app, free_user):
    """Draft trip with two expense notes (one Véloce, one personal)."""
    trip = Trip(
        user_id=free_user.uid,
        name='Mission Paris',
        destination='Paris',
        purpose='Réunion client',
        departure_date=date(2026, 2, 3),
        return_date=date(2026, 2, 4),
        contract_number=free_user.contract_number,
        collaborator_first_name=free_user.first_name,
        collaborator_last_name=free_user.last_name,
        status=TripStatus.DRAFT,
    )
    db.session.add(trip)
    db.session.flush()
    db.session.add_all([
        ExpenseNote(
            trip_id=trip.id,
            user_id=free_user.uid,
            category=ExpenseCategory.TRANSPORT_LONG,
            description='Billet TGV',
            amount=Decimal('89.50'),
            date=date(2026, 2, 3),
            receipt_url='https://files.example.com/receipts/tgv.pdf',
            is_veloce=True,
        ),
        ExpenseNote(
            trip_id=trip.id,
            user_id=free_user.uid,
            category=ExpenseCategory.MEALS,
            description='Dîner',
            amount=Decimal('30.00'),
            date=date(2026, 2, 3),
            is_personal=True,
        ),
    ])
    db.session.commit()
    trip_id = trip.id
    db.session.expire_all()
    return db.session.get(Trip, trip_id)
