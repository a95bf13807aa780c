from datetime import date, timedelta

from promoapp import create_app, db
from promoapp.confirmation import ConfirmationTokenService
from promoapp.models import Account, Claim, Promotion

DEMO_USER_ID = "demo-organiser"

promotions_data = [
    {
        "event_name": "Free Coffee Friday",
        "reward": "One free regular coffee",
        "purpose": "Thank our regulars for their support",
        "days_valid": 30,
    },
    {
        "event_name": "Grand Opening Special",
        "reward": "20% off your first order",
        "purpose": "Celebrate the opening of our new location",
        "days_valid": 14,
    },
]


def get_or_create_account():
    account = Account.query.filter_by(user_id=DEMO_USER_ID).first()
    if account:
        print(f"Found account: {account.name}")
        return account

    print("No demo account found. Creating one...")
    account = Account(user_id=DEMO_USER_ID, name="Demo Cafe", timezone="Australia/Sydney")
    db.session.add(account)
    db.session.commit()
    print(f"Successfully created account: {account.name}")
    return account


def seed_demo_promotion(app=None):
    """Create the demo organiser, its promotions and one claim. Safe to run twice.

    Returns the confirmation URL of the demo claim.
    """
    app = app or create_app()
    with app.app_context():
        account = get_or_create_account()

        print("Checking/Creating promotions...")
        promos = []
        for p_data in promotions_data:
            existing = Promotion.query.filter_by(
                account_id=account.id,
                event_name=p_data["event_name"],
            ).first()

            if existing:
                print(f"Promotion already exists: {p_data['event_name']}")
                promos.append(existing)
                continue

            print(f"Creating promotion: {p_data['event_name']}")
            promo = Promotion(
                account_id=account.id,
                organiser_name=account.name,
                event_name=p_data["event_name"],
                reward=p_data["reward"],
                purpose=p_data["purpose"],
                expiration_date=date.today() + timedelta(days=p_data["days_valid"]),
            )
            db.session.add(promo)
            promos.append(promo)

        try:
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            print(f"Error creating promotions: {e}")
            raise

        service = ConfirmationTokenService()
        first = promos[0]
        claim = service.detect_duplicate_claim(first.id, email="guest@example.com")
        if claim is None:
            claim = service.store.insert(first.id, "Demo Guest", email="guest@example.com")
            print(f"Created demo claim {claim.id}")
        else:
            print(f"Demo claim already exists: {claim.id}")

        url = service.confirmation_url_for(app.config["BASE_URL"], claim)
        print(f"Confirmation link: {url}")
        print(f"Claims on '{first.event_name}': {Claim.query.filter_by(promo_id=first.id).count()}")
        return url


if __name__ == "__main__":
    seed_demo_promotion()
