import logging
from datetime import datetime
from flask import Blueprint, Response, request, jsonify, current_app
from werkzeug.exceptions import HTTPException
from promoapp import db, limiter
from promoapp.models import Account, Promotion
from promoapp.confirmation import ConfirmationTokenService
from promoapp.store import ClaimStore
from promoapp.errors import DuplicateClaim, GenerationError, InvalidInput, StorageError
from promoapp.constants import (
    RATE_LIMIT_STANDARD,
    RATE_LIMIT_CLAIM,
    RATE_LIMIT_GENERATE,
    RATE_LIMIT_GENERATE_DAILY,
    DATE_FORMAT,
    MESSAGE_INVALID_LINK,
    MESSAGE_NO_ACCESS,
    MESSAGE_PROMO_NOT_FOUND,
    MESSAGE_ALREADY_USED,
    MESSAGE_SHOW_QR,
    MESSAGE_ALREADY_CLAIMED,
    MESSAGE_CLAIMED,
    MESSAGE_TRY_AGAIN,
    HTTP_200_OK,
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)
from .validators import (
    CreatePromoInput,
    AccountQueryInput,
    SubmitClaimInput,
    RedeemClaimInput,
    ConfirmationInput,
    GenerateCouponInput,
    json_type_errors,
)
from promoapp.generator import generate_coupon as generate_coupon_fields
from promoapp.helpers import error_response, generate_qr_code, render_qr_png, return_generic_error
import requests
import sentry_sdk

# Set up logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)


def invalid_input_response(inputs):
    sentry_sdk.capture_message(str(inputs.errors), level="warning")
    return jsonify({"error": "Invalid input", "messages": inputs.errors}), HTTP_400_BAD_REQUEST


def invalid_json_response(strings=(), integers=()):
    """Reject a JSON body of the wrong shape before field validation runs."""
    errors = json_type_errors(request.get_json(silent=True), strings, integers)
    if not errors:
        return None
    sentry_sdk.capture_message(str(errors), level="warning")
    return jsonify({"error": "Invalid input", "messages": errors}), HTTP_400_BAD_REQUEST


def clean(value):
    """Strip a submitted string, treating blanks as missing."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def get_owned_promotion(promo_id, account_id):
    """Load a promotion and check the account owns it. Returns (promo, error_response)."""
    promo = db.session.get(Promotion, promo_id)
    if not promo:
        return None, error_response("No promotion found", MESSAGE_PROMO_NOT_FOUND, HTTP_404_NOT_FOUND)
    if promo.account_id != int(account_id):
        logger.warning(f"Account {account_id} tried to manage promo {promo_id} it does not own")
        return None, error_response(
            "Forbidden", "You do not have permission to manage this promotion.", HTTP_403_FORBIDDEN
        )
    return promo, None


@api.route("/promos", methods=["POST"])
@limiter.limit(RATE_LIMIT_STANDARD)
def create_promo():
    """Create a promotion for an organiser account."""
    try:
        wrong_shape = invalid_json_response(
            strings=("organiser_name", "event_name", "reward", "purpose", "expiration_date"),
            integers=("account_id",),
        )
        if wrong_shape:
            return wrong_shape

        inputs = CreatePromoInput(request)
        if not inputs.validate():
            return invalid_input_response(inputs)

        data = request.get_json()

        account = db.session.get(Account, data["account_id"])
        if not account:
            logger.warning(f"Account not found: {data['account_id']}")
            return error_response("No account found", "Could not fetch account information", HTTP_404_NOT_FOUND)

        try:
            expiration_date = datetime.strptime(data["expiration_date"], DATE_FORMAT).date()
        except ValueError:
            return error_response("Invalid input", "Expiration date must be a valid date.", HTTP_400_BAD_REQUEST)

        promo = Promotion(
            account_id=account.id,
            organiser_name=clean(data["organiser_name"]),
            event_name=clean(data["event_name"]),
            reward=clean(data["reward"]),
            purpose=clean(data["purpose"]),
            expiration_date=expiration_date,
        )
        db.session.add(promo)
        db.session.commit()

        logger.info(f"Promo {promo.id} created by account {account.id}")
        return jsonify({"promo": promo.to_dict()}), HTTP_201_CREATED
    except HTTPException:
        raise
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error in create_promo: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return return_generic_error(HTTP_500_INTERNAL_SERVER_ERROR)


@api.route("/promos", methods=["GET"])
def list_promos():
    """List an organiser's promotions, newest first."""
    try:
        inputs = AccountQueryInput(request)
        if not inputs.validate():
            return invalid_input_response(inputs)

        account_id = int(request.args["account_id"])
        promos = (
            Promotion.query.filter_by(account_id=account_id)
            .order_by(Promotion.created_at.desc(), Promotion.id.desc())
            .all()
        )
        return jsonify({"promos": [promo.to_dict() for promo in promos]})
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in list_promos: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return return_generic_error(HTTP_500_INTERNAL_SERVER_ERROR)


@api.route("/promos/<int:promo_id>", methods=["GET"])
def promo_details(promo_id):
    """Get the public details of a promotion."""
    promo = db.session.get(Promotion, promo_id)
    if not promo:
        return error_response("No promotion found", MESSAGE_PROMO_NOT_FOUND, HTTP_404_NOT_FOUND)
    return jsonify({"promo": promo.to_dict(), "is_expired": promo.is_expired()})


@api.route("/promos/<int:promo_id>/qr", methods=["GET"])
def promo_share_qr(promo_id):
    """Serve a QR code linking to the public promotion page."""
    promo = db.session.get(Promotion, promo_id)
    if not promo:
        return error_response("No promotion found", MESSAGE_PROMO_NOT_FOUND, HTTP_404_NOT_FOUND)
    promo_url = f"{current_app.config['BASE_URL'].rstrip('/')}/{promo.id}"
    return Response(render_qr_png(promo_url), mimetype="image/png")


@api.route("/promos/<int:promo_id>/claims", methods=["POST"])
@limiter.limit(RATE_LIMIT_CLAIM)
def submit_claim(promo_id):
    """Claim a promotion and hand back the confirmation link."""
    try:
        wrong_shape = invalid_json_response(strings=("name", "email", "phone"))
        if wrong_shape:
            return wrong_shape

        inputs = SubmitClaimInput(request)
        if not inputs.validate():
            return invalid_input_response(inputs)

        data = request.get_json()
        name = clean(data.get("name"))
        email = clean(data.get("email"))
        phone = clean(data.get("phone"))

        if not name:
            return error_response("Invalid input", "Please enter your name.", HTTP_400_BAD_REQUEST)
        if not email and not phone:
            return error_response(
                "Invalid input", "Please provide an email address or a phone number.", HTTP_400_BAD_REQUEST
            )

        promo = db.session.get(Promotion, promo_id)
        if not promo:
            return error_response("No promotion found", MESSAGE_PROMO_NOT_FOUND, HTTP_404_NOT_FOUND)
        if promo.is_expired():
            return error_response("Promotion expired", "This promotion has expired.", HTTP_400_BAD_REQUEST)

        service = ConfirmationTokenService()
        base_url = current_app.config["BASE_URL"]

        existing = service.detect_duplicate_claim(promo_id, email=email, phone=phone)
        if existing is None:
            try:
                claim = service.store.insert(promo_id, name, email=email, phone=phone)
            except DuplicateClaim:
                # Lost a race with a concurrent submission for the same identifier.
                existing = service.detect_duplicate_claim(promo_id, email=email, phone=phone)
                if existing is None:
                    raise
            else:
                return jsonify(
                    {
                        "already_claimed": False,
                        "message": MESSAGE_CLAIMED,
                        "claim": claim.to_dict(),
                        "confirmation_url": service.confirmation_url_for(base_url, claim),
                    }
                ), HTTP_201_CREATED

        logger.info(f"Duplicate claim on promo {promo_id}, returning claim {existing.id}")
        return jsonify(
            {
                "already_claimed": True,
                "message": MESSAGE_ALREADY_CLAIMED,
                "claim": existing.to_dict(),
                "confirmation_url": service.confirmation_url_for(base_url, existing),
            }
        ), HTTP_200_OK
    except InvalidInput as e:
        return error_response("Invalid input", str(e), HTTP_400_BAD_REQUEST)
    except StorageError as e:
        logger.error(f"Storage error in submit_claim: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return error_response("Storage unavailable", MESSAGE_TRY_AGAIN, HTTP_503_SERVICE_UNAVAILABLE)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in submit_claim: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return return_generic_error(HTTP_500_INTERNAL_SERVER_ERROR)


@api.route("/promos/<int:promo_id>/claims", methods=["GET"])
def list_claims(promo_id):
    """List the claims on an organiser's promotion, newest first."""
    try:
        inputs = AccountQueryInput(request)
        if not inputs.validate():
            return invalid_input_response(inputs)

        promo, failure = get_owned_promotion(promo_id, request.args["account_id"])
        if failure:
            return failure

        claims = ClaimStore().list_for_promotion(promo.id)
        return jsonify({"promo": promo.to_dict(), "claims": [claim.to_dict() for claim in claims]})
    except StorageError as e:
        sentry_sdk.capture_exception(e)
        return error_response("Storage unavailable", MESSAGE_TRY_AGAIN, HTTP_503_SERVICE_UNAVAILABLE)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in list_claims: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return return_generic_error(HTTP_500_INTERNAL_SERVER_ERROR)


@api.route("/claims/<int:claim_id>/redeem", methods=["POST"])
@limiter.limit(RATE_LIMIT_STANDARD)
def redeem_claim(claim_id):
    """Mark a claim as used, or flip it back."""
    try:
        wrong_shape = invalid_json_response(integers=("account_id",))
        if wrong_shape:
            return wrong_shape

        inputs = RedeemClaimInput(request)
        if not inputs.validate():
            return invalid_input_response(inputs)

        data = request.get_json()
        store = ClaimStore()

        claim = store.get(claim_id)
        if not claim:
            logger.warning(f"Claim not found: {claim_id}")
            return error_response("No claim found", "No claim found for this promotion.", HTTP_404_NOT_FOUND)

        _, failure = get_owned_promotion(claim.promo_id, data["account_id"])
        if failure:
            return failure

        is_used = data.get("is_used")
        if is_used is None:
            is_used = not claim.is_used
        elif not isinstance(is_used, bool):
            return error_response("Invalid input", "is_used must be true or false.", HTTP_400_BAD_REQUEST)

        store.set_used(claim, is_used)
        logger.info(f"Claim {claim.id} marked is_used={claim.is_used}")
        return jsonify({"claim": claim.to_dict()})
    except StorageError as e:
        sentry_sdk.capture_exception(e)
        return error_response(
            "Database error.",
            "Error when redeeming, please try again.",
            HTTP_503_SERVICE_UNAVAILABLE,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error in redeem_claim: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return return_generic_error(HTTP_500_INTERNAL_SERVER_ERROR)


@api.route("/confirm/<int:promo_id>", methods=["GET"])
def confirm(promo_id):
    """Show the claim status behind a confirmation link."""
    try:
        inputs = ConfirmationInput(request)
        if not inputs.validate():
            return jsonify({"is_valid": False, "message": MESSAGE_INVALID_LINK}), HTTP_400_BAD_REQUEST

        result = ConfirmationTokenService().validate_confirmation(promo_id, request.args["user"])
        if not result.is_valid:
            return jsonify({"is_valid": False, "message": MESSAGE_NO_ACCESS}), HTTP_404_NOT_FOUND

        promo = db.session.get(Promotion, promo_id)
        if not promo:
            return jsonify({"is_valid": False, "message": MESSAGE_PROMO_NOT_FOUND}), HTTP_404_NOT_FOUND

        payload = result.to_dict()
        payload["promo"] = promo.to_dict()
        payload["message"] = MESSAGE_ALREADY_USED if result.is_used else MESSAGE_SHOW_QR
        return jsonify(payload)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in confirm: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return jsonify({"is_valid": False, "message": "An unexpected error occurred"}), HTTP_500_INTERNAL_SERVER_ERROR


@api.route("/confirm/<int:promo_id>/qr", methods=["GET"])
def confirmation_qr(promo_id):
    """Serve the redemption QR code for a valid, unused claim."""
    try:
        inputs = ConfirmationInput(request)
        if not inputs.validate():
            return error_response("Invalid link", MESSAGE_INVALID_LINK, HTTP_400_BAD_REQUEST)

        service = ConfirmationTokenService()
        result = service.validate_confirmation(promo_id, request.args["user"])
        if not result.is_valid:
            return error_response("Invalid link", MESSAGE_NO_ACCESS, HTTP_404_NOT_FOUND)
        if result.is_used:
            return error_response("Already Redeemed", MESSAGE_ALREADY_USED, HTTP_409_CONFLICT)

        confirmation_url = service.confirmation_url_for(current_app.config["BASE_URL"], result.claim)
        token = service.issue_token(result.claim.email, result.claim.phone)
        png_bytes = generate_qr_code(promo_id, token, confirmation_url)
        return Response(png_bytes, mimetype="image/png")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in confirmation_qr: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return return_generic_error(HTTP_500_INTERNAL_SERVER_ERROR)


@api.route("/generate_coupon", methods=["POST"])
@limiter.limit(RATE_LIMIT_GENERATE)
@limiter.limit(RATE_LIMIT_GENERATE_DAILY)
def generate_coupon():
    """Draft promotion fields from a free-text description."""
    try:
        wrong_shape = invalid_json_response(strings=("description", "organiser_name"))
        if wrong_shape:
            return wrong_shape

        inputs = GenerateCouponInput(request)
        if not inputs.validate():
            return invalid_input_response(inputs)

        data = request.get_json()
        coupon = generate_coupon_fields(data["description"], clean(data.get("organiser_name")))
        return jsonify(coupon)
    except requests.RequestException as e:
        logger.error(f"Error calling language model: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return error_response(
            "Generation unavailable", "Unable to generate coupon details right now.", HTTP_502_BAD_GATEWAY
        )
    except GenerationError as e:
        sentry_sdk.capture_exception(e)
        return error_response("Failed to parse AI response", str(e), HTTP_500_INTERNAL_SERVER_ERROR)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error generating coupon: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return return_generic_error(HTTP_500_INTERNAL_SERVER_ERROR)
