"""Tests for the MTN MoMo HTTP client and payment helpers."""

import threading
import time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from storefront.domain.enums import PaymentStatus
from storefront.domain.errors import (
    GatewayAuthError,
    GatewayRequestError,
    PaymentOutcomeUnknown,
    ValidationError,
)
from storefront.services.momo_client import MomoClient, MomoConfig, TokenCache
from storefront.utils.payments import map_provider_status, normalize_msisdn

CONFIG = MomoConfig(
    api_key="api-key",
    user_id="api-user",
    primary_key="sub-key",
    base_url="https://momo.example",
    environment="sandbox",
    currency="RWF",
    callback_url="https://shop.example/payments/webhook/momo",
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def response(status_code=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    resp.text = text
    resp.reason = "Error"
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


def make_client(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    return MomoClient(config=CONFIG, token_cache=TokenCache(ttl_seconds=3300), session=session), session


class TestTokenCache:
    def test_fetches_once_while_valid(self):
        clock = FakeClock()
        cache = TokenCache(ttl_seconds=60, clock=clock)
        fetch = MagicMock(side_effect=["t1", "t2"])

        assert cache.get(fetch) == "t1"
        clock.now += 59
        assert cache.get(fetch) == "t1"
        assert fetch.call_count == 1

    def test_refetches_after_expiry(self):
        clock = FakeClock()
        cache = TokenCache(ttl_seconds=60, clock=clock)
        fetch = MagicMock(side_effect=["t1", "t2"])

        cache.get(fetch)
        clock.now += 60
        assert cache.get(fetch) == "t2"

    def test_invalidate(self):
        cache = TokenCache(ttl_seconds=60, clock=FakeClock())
        fetch = MagicMock(side_effect=["t1", "t2"])

        cache.get(fetch)
        cache.invalidate()
        assert cache.get(fetch) == "t2"

    def test_single_flight_under_concurrency(self):
        cache = TokenCache(ttl_seconds=60)
        calls = []

        def slow_fetch():
            calls.append(1)
            time.sleep(0.05)
            return "token"

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(cache.get(slow_fetch)))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == ["token"] * 8
        assert len(calls) == 1

    def test_failed_fetch_caches_nothing(self):
        cache = TokenCache(ttl_seconds=60, clock=FakeClock())
        fetch = MagicMock(side_effect=[GatewayAuthError("boom"), "t1"])

        with pytest.raises(GatewayAuthError):
            cache.get(fetch)
        assert cache.get(fetch) == "t1"


class TestRequestToPay:
    def test_sends_headers_and_body(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            response(202),
        )

        client.request_to_pay("ref-1", Decimal("2124.00"), "+250788123456", "ORD-20240501-0001")

        token_call, pay_call = session.request.call_args_list
        assert token_call.args == ("POST", "https://momo.example/collection/token/")
        assert token_call.kwargs["auth"] == ("api-user", "api-key")
        assert token_call.kwargs["headers"] == {"Ocp-Apim-Subscription-Key": "sub-key"}

        assert pay_call.args == ("POST", "https://momo.example/collection/v1_0/requesttopay")
        headers = pay_call.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tok"
        assert headers["Ocp-Apim-Subscription-Key"] == "sub-key"
        assert headers["X-Target-Environment"] == "sandbox"
        assert headers["X-Reference-Id"] == "ref-1"
        assert headers["Content-Type"] == "application/json"

        body = pay_call.kwargs["json"]
        assert body["amount"] == "2124.00"
        assert body["currency"] == "RWF"
        assert body["externalId"] == "ref-1"
        assert body["payer"] == {"partyIdType": "MSISDN", "partyId": "+250788123456"}
        assert body["payerMessage"] == "Payment for order ORD-20240501-0001"
        assert body["payeeNote"] == "E-commerce purchase"
        assert body["callbackUrl"] == CONFIG.callback_url

    def test_token_is_reused(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            response(202),
            response(202),
        )

        client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")
        client.request_to_pay("ref-2", Decimal("1"), "+250788000000", "o2")

        assert session.request.call_count == 3

    def test_rejected_request(self):
        client, _ = make_client(
            response(payload={"access_token": "tok"}),
            response(500, text='{"code":"INTERNAL_PROCESSING_ERROR"}'),
        )

        with pytest.raises(GatewayRequestError) as exc_info:
            client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")

        assert "INTERNAL_PROCESSING_ERROR" in exc_info.value.message

    def test_unauthorized_drops_cached_token(self):
        client, session = make_client(
            response(payload={"access_token": "old"}),
            response(401),
            response(payload={"access_token": "new"}),
            response(202),
        )

        with pytest.raises(GatewayRequestError):
            client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")
        client.request_to_pay("ref-2", Decimal("1"), "+250788000000", "o1")

        last_call = session.request.call_args_list[-1]
        assert last_call.kwargs["headers"]["Authorization"] == "Bearer new"

    def test_auth_failure(self):
        client, _ = make_client(response(401, text="invalid credentials"))

        with pytest.raises(GatewayAuthError):
            client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")

    def test_token_missing_in_response(self):
        client, _ = make_client(response(payload={}))

        with pytest.raises(GatewayAuthError):
            client.authenticate()

    def test_token_response_not_an_object(self):
        client, _ = make_client(response(payload=["tok"]))

        with pytest.raises(GatewayAuthError):
            client.authenticate()

    def test_passes_client_timeout(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            response(202),
        )

        client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")

        for call in session.request.call_args_list:
            assert call.kwargs["timeout"] == client.timeout


class TestRequestToPayRetry:
    def test_connection_error_then_accepted(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            requests.ConnectionError("connection refused"),
            response(202),
        )

        client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")

        assert session.request.call_count == 3
        first_pay, second_pay = session.request.call_args_list[1:]
        assert first_pay.kwargs["headers"]["X-Reference-Id"] == "ref-1"
        assert second_pay.kwargs["headers"]["X-Reference-Id"] == "ref-1"

    def test_connect_timeout_twice_fails(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            requests.ConnectTimeout("connect timed out"),
            requests.ConnectTimeout("connect timed out"),
        )

        with pytest.raises(GatewayRequestError) as exc_info:
            client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")

        assert not isinstance(exc_info.value, PaymentOutcomeUnknown)
        assert session.request.call_count == 3

    def test_read_timeout_is_not_repeated(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            requests.ReadTimeout("read timed out"),
            response(409, text='{"code":"RESOURCE_ALREADY_EXIST"}'),
        )

        with pytest.raises(PaymentOutcomeUnknown):
            client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")

        # requesttopay wyslany tylko raz
        assert session.request.call_count == 2

    def test_duplicate_reference_is_accepted(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            response(409, text='{"code":"RESOURCE_ALREADY_EXIST"}'),
        )

        client.request_to_pay("ref-1", Decimal("1"), "+250788000000", "o1")

        assert session.request.call_count == 2


class TestGetStatus:
    def test_returns_provider_status(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            response(payload={"status": "SUCCESSFUL"}),
        )

        assert client.get_status("ref-1") == "SUCCESSFUL"
        assert session.request.call_args.args == (
            "GET",
            "https://momo.example/collection/v1_0/requesttopay/ref-1",
        )

    def test_error(self):
        client, _ = make_client(
            response(payload={"access_token": "tok"}),
            response(404, text="RESOURCE_NOT_FOUND"),
        )

        with pytest.raises(GatewayRequestError):
            client.get_status("ref-1")

    def test_timeout_twice_fails(self):
        client, session = make_client(
            response(payload={"access_token": "tok"}),
            requests.Timeout("timed out"),
            requests.Timeout("timed out"),
        )

        with pytest.raises(GatewayRequestError):
            client.get_status("ref-1")
        assert session.request.call_count == 3

    def test_read_timeout_is_retried(self):
        client, _ = make_client(
            response(payload={"access_token": "tok"}),
            requests.ReadTimeout("read timed out"),
            response(payload={"status": "PENDING"}),
        )

        assert client.get_status("ref-1") == "PENDING"

    def test_response_not_an_object(self):
        client, _ = make_client(
            response(payload={"access_token": "tok"}),
            response(payload=["SUCCESSFUL"]),
        )

        with pytest.raises(GatewayRequestError):
            client.get_status("ref-1")


def test_payment_url():
    client, _ = make_client()
    assert client.payment_url("ref-1") == "https://momo.example/ref-1"


class TestStatusMapping:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("SUCCESSFUL", PaymentStatus.PAID),
            ("successful", PaymentStatus.PAID),
            ("FAILED", PaymentStatus.FAILED),
            ("REJECTED", PaymentStatus.FAILED),
            ("CANCELLED", PaymentStatus.CANCELLED),
            ("PENDING", PaymentStatus.PENDING),
            ("SOMETHING_NEW", PaymentStatus.PENDING),
            ("", PaymentStatus.PENDING),
            (None, PaymentStatus.PENDING),
        ],
    )
    def test_map(self, raw, expected):
        assert map_provider_status(raw) == expected


class TestNormalizeMsisdn:
    @pytest.mark.parametrize(
        "phone, expected",
        [
            ("0788123456", "+250788123456"),
            ("788123456", "+250788123456"),
            ("250788123456", "+250788123456"),
            ("+250788123456", "+250788123456"),
            ("+256 772 123 456", "+256772123456"),
        ],
    )
    def test_normalize(self, phone, expected):
        assert normalize_msisdn(phone, country_code="250") == expected

    @pytest.mark.parametrize("phone", ["", None, "+"])
    def test_missing(self, phone):
        with pytest.raises(ValidationError) as exc_info:
            normalize_msisdn(phone, country_code="250")
        assert exc_info.value.code == "MISSING_PHONE"
