from promoapp import db
from datetime import datetime, timezone
import pytz


def utcnow():
    return datetime.now(timezone.utc)


class Account(db.Model):
    """Organiser account, keyed by the identity provider's user id."""
    __tablename__ = "accounts"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    promotions = db.relationship("Promotion", backref="account", lazy=True)

    __table_args__ = (db.Index("idx_user_id", "user_id"),)

    def to_dict(self):
        """Convert object to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "timezone": self.timezone,
        }


class Promotion(db.Model):
    """Promotion model."""
    __tablename__ = "promotions"
    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    organiser_name = db.Column(db.String(255), nullable=False)
    event_name = db.Column(db.String(255), nullable=False)
    reward = db.Column(db.String(255), nullable=False)
    purpose = db.Column(db.Text, nullable=False)
    expiration_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    claims = db.relationship("Claim", backref="promotion", lazy=True)

    __table_args__ = (db.Index("idx_account_created", "account_id", "created_at"),)

    def local_today(self, now=None):
        """Today's date in the owning account's timezone."""
        tz_name = self.account.timezone if self.account else "UTC"
        try:
            local_tz = pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            local_tz = pytz.UTC
        now = now or utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=pytz.UTC)
        return now.astimezone(local_tz).date()

    def is_expired(self, now=None):
        """A promotion stays claimable through its expiration date."""
        return self.local_today(now) > self.expiration_date

    def to_dict(self):
        """Convert object to dictionary."""
        return {
            "id": self.id,
            "account_id": self.account_id,
            "organiser_name": self.organiser_name,
            "event_name": self.event_name,
            "reward": self.reward,
            "purpose": self.purpose,
            "expiration_date": self.expiration_date.isoformat(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Claim(db.Model):
    """A recipient's claim on a promotion."""
    __tablename__ = "claims"
    id = db.Column(db.Integer, primary_key=True)
    promo_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # NULLs never collide, so phone-only and email-only claims coexist.
    __table_args__ = (
        db.UniqueConstraint("promo_id", "email", name="uq_claim_promo_email"),
        db.UniqueConstraint("promo_id", "phone", name="uq_claim_promo_phone"),
        db.Index("idx_claim_promo_created", "promo_id", "created_at"),
    )

    def to_dict(self):
        """Convert object to dictionary."""
        return {
            "id": self.id,
            "promo_id": self.promo_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_used": self.is_used,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
