class PromoAppError(Exception):
    """Base class for promotion service errors."""


class InvalidInput(PromoAppError):
    """Neither an email nor a phone number was supplied."""


class DecodeFailure(PromoAppError):
    """A confirmation token is not valid Base64 or does not decode to text."""


class StorageError(PromoAppError):
    """The claim store could not complete a query or write."""


class DuplicateClaim(StorageError):
    """An insert collided with an existing claim for the same promotion."""


class GenerationError(PromoAppError):
    """The language model reply could not be turned into coupon fields."""
