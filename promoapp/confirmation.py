"""Claim confirmation tokens.

A confirmation link lets a claimant reopen their claim without logging in.
The token in the link is the standard Base64 encoding of the claimant's email
(or phone when no email was given). It is an obfuscation, not a credential:
anyone who knows the identifier can rebuild the link.
"""
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional

from promoapp.constants import CONFIRMATION_PATH, CONFIRMATION_QUERY_PARAM
from promoapp.errors import DecodeFailure, InvalidInput, StorageError
from promoapp.models import Claim
from promoapp.store import ClaimStore

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    is_valid: bool
    is_used: Optional[bool] = None
    claim: Optional[Claim] = None

    def to_dict(self):
        data = {"is_valid": self.is_valid}
        if self.is_valid:
            data["is_used"] = self.is_used
            data["claim"] = self.claim.to_dict()
        return data


class ConfirmationTokenService:
    """Issue confirmation tokens and check them against stored claims."""

    def __init__(self, store: Optional[ClaimStore] = None):
        self.store = store or ClaimStore()

    @staticmethod
    def issue_token(email: Optional[str] = None, phone: Optional[str] = None) -> str:
        """Encode the claimant's identifier, preferring email over phone."""
        identifier = email or phone
        if not identifier:
            raise InvalidInput("Either email or phone must be provided")
        return base64.b64encode(identifier.encode("utf-8")).decode("ascii")

    @staticmethod
    def decode_token(token: Optional[str]) -> str:
        if not token:
            raise DecodeFailure("Empty confirmation token")
        # An unescaped "+" arrives from the query string as a space.
        token = token.strip().replace(" ", "+")
        try:
            identifier = base64.b64decode(token, validate=True).decode("utf-8")
        except (binascii.Error, ValueError) as e:
            raise DecodeFailure("Malformed confirmation token") from e
        if not identifier:
            raise DecodeFailure("Confirmation token decodes to nothing")
        return identifier

    def build_confirmation_url(self, base_origin: str, promo_id, email: Optional[str] = None,
                               phone: Optional[str] = None) -> str:
        token = self.issue_token(email, phone)
        return f"{base_origin}/{CONFIRMATION_PATH}/{promo_id}?{CONFIRMATION_QUERY_PARAM}={token}"

    def validate_confirmation(self, promo_id, token: Optional[str]) -> ValidationResult:
        """Look up the claim a confirmation token refers to.

        Never raises for bad tokens or storage trouble; both come back as an
        invalid result. When several claims match, the newest one wins. The
        promotion itself is not checked here.
        """
        try:
            identifier = self.decode_token(token)
        except DecodeFailure as e:
            logger.info(f"Rejected confirmation token for promo {promo_id}: {e}")
            return ValidationResult(is_valid=False)

        try:
            matches = self.store.find_matching(promo_id, email=identifier, phone=identifier)
        except StorageError as e:
            logger.warning(f"Validation lookup failed for promo {promo_id}: {e}")
            return ValidationResult(is_valid=False)

        if not matches:
            return ValidationResult(is_valid=False)

        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} claims share one identifier on promo {promo_id}; using claim {matches[0].id}"
            )

        claim = matches[0]
        return ValidationResult(is_valid=True, is_used=claim.is_used, claim=claim)

    def detect_duplicate_claim(self, promo_id, email: Optional[str] = None,
                               phone: Optional[str] = None) -> Optional[Claim]:
        """Return an existing claim on this promotion with the same email or phone.

        Raises ``InvalidInput`` with no identifier and lets ``StorageError``
        through, since a submission must not go ahead on a failed check.
        """
        if not email and not phone:
            raise InvalidInput("Either email or phone must be provided")
        matches = self.store.find_matching(promo_id, email=email, phone=phone)
        return matches[0] if matches else None

    def confirmation_url_for(self, base_origin: str, claim: Claim) -> str:
        """Rebuild the confirmation link from a stored claim."""
        return self.build_confirmation_url(base_origin, claim.promo_id, claim.email, claim.phone)
