import base64
from datetime import date, timedelta

import pytest

from promoapp.confirmation import ConfirmationTokenService
from promoapp.errors import StorageError
from promoapp.models import Claim
from promoapp.store import ClaimStore


def b64(value):
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def test_submit_claim_returns_confirmation_url(client, make_promo):
    promo = make_promo()

    response = client.post(
        f"/api/promos/{promo.id}/claims",
        json={"name": "Sam Lee", "email": " a@b.com ", "phone": "555-1234"},
    )

    assert response.status_code == 201
    data = response.get_json()
    assert data["already_claimed"] is False
    assert data["claim"]["email"] == "a@b.com"
    assert data["claim"]["is_used"] is False
    assert data["confirmation_url"] == f"https://example.com/confirm/{promo.id}?user={b64('a@b.com')}"


def test_submit_phone_only_claim(client, make_promo):
    promo = make_promo()

    response = client.post(f"/api/promos/{promo.id}/claims", json={"name": "Sam", "phone": "555-1234"})

    assert response.status_code == 201
    assert response.get_json()["confirmation_url"].endswith(f"?user={b64('555-1234')}")


def test_duplicate_submission_returns_existing_claim(client, make_promo, make_claim):
    promo = make_promo()
    existing = make_claim(promo, name="Sam", email="a@b.com", phone="555-1234")

    response = client.post(
        f"/api/promos/{promo.id}/claims",
        json={"name": "Someone Else", "phone": "555-1234"},
    )

    assert response.status_code == 200
    data = response.get_json()
    assert data["already_claimed"] is True
    assert data["claim"]["id"] == existing.id
    # Link is rebuilt from the stored claim, so it carries the stored email.
    assert data["confirmation_url"] == f"https://example.com/confirm/{promo.id}?user={b64('a@b.com')}"
    assert Claim.query.filter_by(promo_id=promo.id).count() == 1


def test_same_email_on_another_promotion_is_a_new_claim(client, make_promo, make_claim):
    first = make_promo(event_name="First")
    second = make_promo(event_name="Second")
    make_claim(first, email="a@b.com")

    response = client.post(f"/api/promos/{second.id}/claims", json={"name": "Sam", "email": "a@b.com"})

    assert response.status_code == 201
    assert response.get_json()["already_claimed"] is False


def test_submission_requires_email_or_phone(client, make_promo):
    promo = make_promo()

    response = client.post(f"/api/promos/{promo.id}/claims", json={"name": "Sam", "email": " ", "phone": ""})

    assert response.status_code == 400
    assert Claim.query.count() == 0


def test_submission_requires_name(client, make_promo):
    promo = make_promo()

    response = client.post(f"/api/promos/{promo.id}/claims", json={"email": "a@b.com"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid input"


def test_unknown_promotion(client, app):
    response = client.post("/api/promos/999/claims", json={"name": "Sam", "email": "a@b.com"})

    assert response.status_code == 404


def test_expired_promotion_rejects_claims(client, make_promo):
    promo = make_promo(expiration_date=date.today() - timedelta(days=2))

    response = client.post(f"/api/promos/{promo.id}/claims", json={"name": "Sam", "email": "a@b.com"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Promotion expired"


def test_storage_failure_blocks_submission(client, make_promo, mocker):
    promo = make_promo()
    mocker.patch.object(ClaimStore, "find_matching", side_effect=StorageError("database unavailable"))

    response = client.post(f"/api/promos/{promo.id}/claims", json={"name": "Sam", "email": "a@b.com"})

    assert response.status_code == 503
    assert "try again" in response.get_json()["message"]


def test_concurrent_duplicate_resolves_to_existing_claim(client, make_promo, make_claim, mocker):
    promo = make_promo()
    existing = make_claim(promo, email="a@b.com")
    real_detect = ConfirmationTokenService.detect_duplicate_claim
    calls = []

    def first_check_misses(self, promo_id, email=None, phone=None):
        calls.append(promo_id)
        if len(calls) == 1:
            return None
        return real_detect(self, promo_id, email=email, phone=phone)

    mocker.patch.object(ConfirmationTokenService, "detect_duplicate_claim", first_check_misses)

    response = client.post(f"/api/promos/{promo.id}/claims", json={"name": "Sam", "email": "a@b.com"})

    assert response.status_code == 200
    data = response.get_json()
    assert data["already_claimed"] is True
    assert data["claim"]["id"] == existing.id
    assert len(calls) == 2


def test_list_claims_for_owner(client, make_account, make_promo, make_claim):
    account = make_account()
    promo = make_promo(account=account)
    first = make_claim(promo, email="1@b.com")
    second = make_claim(promo, email="2@b.com")

    response = client.get(f"/api/promos/{promo.id}/claims?account_id={account.id}")

    assert response.status_code == 200
    assert [c["id"] for c in response.get_json()["claims"]] == [second.id, first.id]


def test_list_claims_forbidden_for_other_account(client, make_account, make_promo):
    promo = make_promo()
    other = make_account(name="Other")

    response = client.get(f"/api/promos/{promo.id}/claims?account_id={other.id}")

    assert response.status_code == 403


def test_redeem_flips_and_sets_is_used(client, make_account, make_promo, make_claim):
    account = make_account()
    promo = make_promo(account=account)
    claim = make_claim(promo, email="a@b.com")

    response = client.post(f"/api/claims/{claim.id}/redeem", json={"account_id": account.id})
    assert response.status_code == 200
    assert response.get_json()["claim"]["is_used"] is True

    response = client.post(f"/api/claims/{claim.id}/redeem", json={"account_id": account.id})
    assert response.get_json()["claim"]["is_used"] is False

    response = client.post(f"/api/claims/{claim.id}/redeem", json={"account_id": account.id, "is_used": True})
    assert response.get_json()["claim"]["is_used"] is True

    confirm = client.get(f"/api/confirm/{promo.id}?user={b64('a@b.com')}")
    assert confirm.get_json()["is_used"] is True


def test_redeem_rejects_other_account(client, make_account, make_promo, make_claim):
    promo = make_promo()
    claim = make_claim(promo, email="a@b.com")
    other = make_account(name="Other")

    response = client.post(f"/api/claims/{claim.id}/redeem", json={"account_id": other.id})

    assert response.status_code == 403
    assert claim.is_used is False


def test_redeem_unknown_claim(client, make_account):
    account = make_account()

    response = client.post("/api/claims/999/redeem", json={"account_id": account.id})

    assert response.status_code == 404


def test_redeem_rejects_non_boolean_flag(client, make_account, make_promo, make_claim):
    account = make_account()
    claim = make_claim(make_promo(account=account), email="a@b.com")

    response = client.post(f"/api/claims/{claim.id}/redeem", json={"account_id": account.id, "is_used": "yes"})

    assert response.status_code == 400


@pytest.mark.parametrize("payload", [
    {"name": "Sam", "phone": 5551234},
    {"name": "Sam", "email": ["a@b.com"]},
    {"name": 42, "email": "a@b.com"},
])
def test_submission_rejects_non_string_fields(client, make_promo, payload):
    promo = make_promo()

    response = client.post(f"/api/promos/{promo.id}/claims", json=payload)

    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid input"
    assert Claim.query.count() == 0


def test_submission_rejects_non_object_body(client, make_promo):
    promo = make_promo()

    response = client.post(f"/api/promos/{promo.id}/claims", json=["x"])

    assert response.status_code == 400
    assert "body" in response.get_json()["messages"]


def test_submission_allows_null_optional_field(client, make_promo):
    promo = make_promo()

    response = client.post(f"/api/promos/{promo.id}/claims", json={"name": "Sam", "email": None, "phone": "555-1234"})

    assert response.status_code == 201


@pytest.mark.parametrize("account_id", ["abc", "1", True, 1.5])
def test_redeem_rejects_non_integer_account(client, make_account, make_promo, make_claim, account_id):
    account = make_account()
    claim = make_claim(make_promo(account=account), email="a@b.com")

    response = client.post(f"/api/claims/{claim.id}/redeem", json={"account_id": account_id})

    assert response.status_code == 400
    assert claim.is_used is False
