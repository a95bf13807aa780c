from datetime import date, timedelta

import pytest

from promoapp import create_app, db
from promoapp.models import Account, Claim, Promotion


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_account(app):
    counter = {"n": 0}

    def _make(name="Corner Cafe", timezone="UTC", user_id=None):
        counter["n"] += 1
        account = Account(
            user_id=user_id or f"organiser-{counter['n']}",
            name=name,
            timezone=timezone,
        )
        db.session.add(account)
        db.session.commit()
        return account

    return _make


@pytest.fixture
def make_promo(app, make_account):
    def _make(account=None, event_name="Free Coffee Friday", expiration_date=None):
        account = account or make_account()
        promo = Promotion(
            account_id=account.id,
            organiser_name=account.name,
            event_name=event_name,
            reward="One free coffee",
            purpose="Say thanks to regulars",
            expiration_date=expiration_date or date.today() + timedelta(days=30),
        )
        db.session.add(promo)
        db.session.commit()
        return promo

    return _make


@pytest.fixture
def make_claim(app):
    def _make(promo, name="Sam Lee", email=None, phone=None, is_used=False):
        claim = Claim(promo_id=promo.id, name=name, email=email, phone=phone, is_used=is_used)
        db.session.add(claim)
        db.session.commit()
        return claim

    return _make
