# Rate limits
RATE_LIMIT_STANDARD = "30 per minute"
RATE_LIMIT_CLAIM = "10 per minute"
RATE_LIMIT_GENERATE = "5 per minute"
RATE_LIMIT_GENERATE_DAILY = "100 per day"

# Input lengths
MAX_STRING_LENGTH = 255
MAX_TEXT_LENGTH = 2000
PHONE_STRING_LENGTH = 32
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
DATE_FORMAT = "%Y-%m-%d"

# QR codes
QR_CODE_EXPIRY_SECONDS = 86400
QR_BOX_SIZE = 10
QR_BORDER_SIZE = 4

# Confirmation links
CONFIRMATION_PATH = "confirm"
CONFIRMATION_QUERY_PARAM = "user"

# Status messages shown on the confirmation view
MESSAGE_INVALID_LINK = "Invalid confirmation link"
MESSAGE_NO_ACCESS = "You do not have access to this promotion"
MESSAGE_PROMO_NOT_FOUND = "Promo details could not be found"
MESSAGE_ALREADY_USED = "This promotion has already been marked as used by the creator"
MESSAGE_SHOW_QR = "Show this QR code to the promo creator to claim your reward"
MESSAGE_ALREADY_CLAIMED = "You have already claimed this promotion. Use the link below to view your confirmation."
MESSAGE_CLAIMED = "Promotion claimed. Use the link below to view your confirmation."
MESSAGE_TRY_AGAIN = "We could not save your claim right now, please try again."

# HTTP status codes
HTTP_200_OK = 200
HTTP_201_CREATED = 201
HTTP_400_BAD_REQUEST = 400
HTTP_403_FORBIDDEN = 403
HTTP_404_NOT_FOUND = 404
HTTP_409_CONFLICT = 409
HTTP_500_INTERNAL_SERVER_ERROR = 500
HTTP_502_BAD_GATEWAY = 502
HTTP_503_SERVICE_UNAVAILABLE = 503
