import base64
import json
import logging
from io import BytesIO

import qrcode
import sentry_sdk
from flask import current_app, jsonify
from qrcode.image.pil import PilImage

from promoapp.constants import (
    QR_BORDER_SIZE,
    QR_BOX_SIZE,
    QR_CODE_EXPIRY_SECONDS,
)

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def qr_cache_key(promo_id, token):
    return f"qr_code:{promo_id}:{token}"


def store_qr_code(key, png_bytes):
    """Store QR code in Redis with 24-hour expiration."""
    redis_client = current_app.config.get("REDIS_CLIENT")
    if redis_client is None:
        return
    try:
        qr_data = json.dumps({
            "image": base64.b64encode(png_bytes).decode(),
            "format": "PNG",
        })
        redis_client.setex(key, QR_CODE_EXPIRY_SECONDS, qr_data)
    except Exception as e:
        logger.error(f"Error in store_qr_code: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)


def get_qr_code(key):
    """Retrieve QR code from Redis."""
    redis_client = current_app.config.get("REDIS_CLIENT")
    if redis_client is None:
        return None
    try:
        qr_data = redis_client.get(key)
        if qr_data:
            qr_dict = json.loads(qr_data)
            return base64.b64decode(qr_dict["image"])
        return None
    except Exception as e:
        logger.error(f"Error in get_qr_code: {str(e)}", exc_info=True)
        sentry_sdk.capture_exception(e)
        return None


def render_qr_png(data):
    """Render ``data`` as a PNG QR code."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_H,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER_SIZE,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="#FFFFFF", image_factory=PilImage)
    buffered = BytesIO()
    img.save(buffered, format="PNG")
    return buffered.getvalue()


def generate_qr_code(promo_id, token, confirmation_url):
    """Get the redemption QR code for a confirmation link, generating it on a cache miss."""
    key = qr_cache_key(promo_id, token)
    cached = get_qr_code(key)
    if cached:
        return cached

    logger.info(f"Generating redemption QR code for promo {promo_id}")
    png_bytes = render_qr_png(confirmation_url)
    store_qr_code(key, png_bytes)
    return png_bytes


def error_response(error, message, status):
    """Build a JSON error payload."""
    return jsonify({"error": error, "message": message}), status


def return_generic_error(status=500):
    """Return a generic error response."""
    return error_response(
        "An unexpected error occurred",
        "Looks like we ran into an error. Try refreshing your browser or contact the promotion organiser if the issue continues.",
        status,
    )
