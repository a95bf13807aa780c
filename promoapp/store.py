"""Claim storage.

The confirmation flow only needs a handful of queries: an equality filter
joined with OR, single-row lookup, insert, and a single-field update. They
live here so the token service never touches the session directly, and so
every database failure surfaces as a ``StorageError``.
"""
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from promoapp import db
from promoapp.errors import DuplicateClaim, StorageError
from promoapp.models import Claim

logger = logging.getLogger(__name__)


class ClaimStore:
    """Read and write claim records."""

    def find_matching(self, promo_id, email=None, phone=None):
        """Claims for ``promo_id`` whose email OR phone equals the given values.

        A clause is left out when its value is empty, so a blank field never
        matches other claimants who also left it blank. Results are newest
        first.
        """
        clauses = []
        if email:
            clauses.append(Claim.email == email)
        if phone:
            clauses.append(Claim.phone == phone)
        if not clauses:
            return []

        try:
            return (
                Claim.query.filter(Claim.promo_id == promo_id, or_(*clauses))
                .order_by(Claim.created_at.desc(), Claim.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error querying claims for promo {promo_id}: {str(e)}", exc_info=True)
            raise StorageError("Could not query claims") from e

    def get(self, claim_id):
        try:
            return db.session.get(Claim, claim_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error loading claim {claim_id}: {str(e)}", exc_info=True)
            raise StorageError("Could not load claim") from e

    def list_for_promotion(self, promo_id):
        try:
            return (
                Claim.query.filter_by(promo_id=promo_id)
                .order_by(Claim.created_at.desc(), Claim.id.desc())
                .all()
            )
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error listing claims for promo {promo_id}: {str(e)}", exc_info=True)
            raise StorageError("Could not list claims") from e

    def insert(self, promo_id, name, email=None, phone=None):
        """Insert a new, unused claim. Empty contact fields are stored as NULL."""
        claim = Claim(
            promo_id=promo_id,
            name=name,
            email=email or None,
            phone=phone or None,
            is_used=False,
        )
        try:
            db.session.add(claim)
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            logger.warning(f"Duplicate claim rejected by storage for promo {promo_id}")
            raise DuplicateClaim("A claim with this email or phone already exists") from e
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error inserting claim for promo {promo_id}: {str(e)}", exc_info=True)
            raise StorageError("Could not save claim") from e

        logger.info(f"Claim {claim.id} created for promo {promo_id}")
        return claim

    def set_used(self, claim, is_used):
        try:
            claim.is_used = bool(is_used)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error updating claim {claim.id}: {str(e)}", exc_info=True)
            raise StorageError("Could not update claim") from e
        return claim
