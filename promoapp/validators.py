from flask_inputs import Inputs
from wtforms import validators as v
from promoapp.constants import (
    MAX_STRING_LENGTH,
    MAX_TEXT_LENGTH,
    PHONE_STRING_LENGTH,
    DATE_PATTERN,
)

ACCOUNT_ID_PATTERN = r"^\d+$"


class CreatePromoInput(Inputs):
    """Validator for promotion creation input."""
    json = {
        'account_id': [v.DataRequired(), v.NumberRange(min=1)],
        'organiser_name': [v.DataRequired(), v.Length(max=MAX_STRING_LENGTH)],
        'event_name': [v.DataRequired(), v.Length(max=MAX_STRING_LENGTH)],
        'reward': [v.DataRequired(), v.Length(max=MAX_STRING_LENGTH)],
        'purpose': [v.DataRequired(), v.Length(max=MAX_TEXT_LENGTH)],
        'expiration_date': [v.DataRequired(), v.Regexp(DATE_PATTERN)]
    }

class AccountQueryInput(Inputs):
    """Validator for organiser listing queries."""
    args = {
        'account_id': [v.DataRequired(), v.Regexp(ACCOUNT_ID_PATTERN)]
    }

class SubmitClaimInput(Inputs):
    """Validator for claim submission input."""
    json = {
        'name': [v.DataRequired(), v.Length(max=MAX_STRING_LENGTH)],
        'email': [v.Optional(), v.Length(max=MAX_STRING_LENGTH)],
        'phone': [v.Optional(), v.Length(max=PHONE_STRING_LENGTH)]
    }

class RedeemClaimInput(Inputs):
    """Validator for redemption marking input."""
    json = {
        'account_id': [v.DataRequired(), v.NumberRange(min=1)]
    }

class ConfirmationInput(Inputs):
    """Validator for confirmation link input."""
    args = {
        'user': [v.DataRequired(), v.Length(max=MAX_TEXT_LENGTH)]
    }

class GenerateCouponInput(Inputs):
    """Validator for AI coupon generation input."""
    json = {
        'description': [v.DataRequired(), v.Length(max=MAX_TEXT_LENGTH)],
        'organiser_name': [v.Optional(), v.Length(max=MAX_STRING_LENGTH)]
    }


def json_type_errors(data, strings=(), integers=()):
    """Check a JSON body is an object whose fields have the expected types.

    WTForms validators assume form-style strings and raise on other JSON
    types, so this runs before ``Inputs.validate``. Returns a dict of error
    messages, empty when the body is usable. Missing and null fields are
    left to the field validators.
    """
    if not isinstance(data, dict):
        return {'body': ['Request body must be a JSON object.']}

    errors = {}
    for field in strings:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            errors[field] = ['Must be a string.']
    for field in integers:
        value = data.get(field)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            errors[field] = ['Must be an integer.']
    return errors
