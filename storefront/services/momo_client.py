# storefront/services/momo_client.py
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

import requests
from requests import RequestException

from storefront.domain.errors import GatewayAuthError, GatewayRequestError, PaymentOutcomeUnknown
from storefront.utils import settings
from storefront.utils.logging import get_logger
from storefront.utils.payments import describe_error
from storefront.utils.retry import NOT_DELIVERED_ERRORS, http_retry

logger = get_logger(__name__)


@dataclass(frozen=True)
class MomoConfig:
    api_key: str
    user_id: str
    primary_key: str
    base_url: str
    environment: str
    currency: str
    callback_url: str

    @classmethod
    def from_settings(cls) -> "MomoConfig":
        return cls(
            api_key=settings.MTN_MOMO_API_KEY,
            user_id=settings.MTN_MOMO_USER_ID,
            primary_key=settings.MTN_MOMO_PRIMARY_KEY,
            base_url=settings.MTN_MOMO_BASE_URL.rstrip("/"),
            environment=settings.MTN_MOMO_ENVIRONMENT,
            currency=settings.MTN_MOMO_CURRENCY,
            callback_url=settings.MTN_MOMO_CALLBACK_URL,
        )


class TokenCache:
    """
    Cache tokena MoMo (token, expires_at) wspolny dla calego procesu.

    Odswiezanie jest single-flight: przy wygasnieciu tylko jeden watek
    pobiera nowy token, reszta czeka na locku i dostaje juz odswiezony.
    """

    def __init__(
        self,
        ttl_seconds: int = settings.MOMO_TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def _current(self) -> str | None:
        if self._token and self._clock() < self._expires_at:
            return self._token
        return None

    def get(self, fetch: Callable[[], str]) -> str:
        token = self._current()
        if token:
            return token

        with self._lock:
            # ktos mogl odswiezyc zanim dostalismy lock
            token = self._current()
            if token:
                return token

            token = fetch()
            self._token = token
            self._expires_at = self._clock() + self.ttl_seconds
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0


class MomoClient:
    """HTTP klient MTN MoMo Collection API (token, requesttopay, status)."""

    def __init__(
        self,
        config: MomoConfig | None = None,
        token_cache: TokenCache | None = None,
        session: requests.Session | None = None,
        timeout: float = settings.MOMO_TIMEOUT_SECONDS,
    ):
        self.config = config or MomoConfig.from_settings()
        self.token_cache = token_cache or TokenCache()
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.info(f"MomoClient {method} {url}")
        resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        resp.raise_for_status()
        return resp

    @http_retry()
    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        return self._request(method, url, **kwargs)

    # po ReadTimeout dostawca mogl juz przyjac requesttopay - ponawiamy tylko niedostarczone
    @http_retry(retry_on=NOT_DELIVERED_ERRORS)
    def _send_pay(self, url: str, **kwargs) -> requests.Response:
        return self._request("POST", url, **kwargs)

    def authenticate(self) -> str:
        return self.token_cache.get(self._fetch_token)

    def _fetch_token(self) -> str:
        url = f"{self.config.base_url}/collection/token/"
        try:
            resp = self._send(
                "POST",
                url,
                auth=(self.config.user_id, self.config.api_key),
                headers={"Ocp-Apim-Subscription-Key": self.config.primary_key},
            )
            data = resp.json()
        except (RequestException, ValueError) as e:
            logger.error(f"Failed to get MoMo token: {describe_error(e)}")
            raise GatewayAuthError(f"MoMo authentication failed: {describe_error(e)}") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise GatewayAuthError("MoMo authentication failed: no access_token in response")

        logger.info("Fetched new MoMo access token")
        return token

    def _headers(self, token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "Ocp-Apim-Subscription-Key": self.config.primary_key,
            "X-Target-Environment": self.config.environment,
        }

    def request_to_pay(self, reference: str, amount: Decimal, msisdn: str, order_context: str) -> None:
        """
        Wysyla requesttopay z X-Reference-Id = reference.

        409 oznacza, ze dostawca ma juz ten reference (wczesniejsza proba doszla),
        wiec traktujemy go jak przyjecie. ReadTimeout konczy sie PaymentOutcomeUnknown.
        """
        token = self.authenticate()
        headers = self._headers(token)
        headers["X-Reference-Id"] = reference
        headers["Content-Type"] = "application/json"

        body = {
            "amount": str(amount),
            "currency": self.config.currency,
            "externalId": reference,
            "payer": {"partyIdType": "MSISDN", "partyId": msisdn},
            "payerMessage": f"Payment for order {order_context}",
            "payeeNote": "E-commerce purchase",
            "callbackUrl": self.config.callback_url,
        }

        try:
            self._send_pay(
                f"{self.config.base_url}/collection/v1_0/requesttopay",
                json=body,
                headers=headers,
            )
        except requests.ReadTimeout as e:
            logger.warning(f"MoMo requesttopay {reference} timed out after sending")
            raise PaymentOutcomeUnknown(f"MoMo payment initiation timed out: {describe_error(e)}") from e
        except RequestException as e:
            response = getattr(e, "response", None)
            if response is not None and response.status_code == 409:
                logger.info(f"MoMo already has requesttopay {reference}, treating as accepted")
                return
            self._invalidate_on_unauthorized(e)
            raise GatewayRequestError(f"MoMo payment initiation failed: {describe_error(e)}") from e

    def get_status(self, reference: str) -> str:
        token = self.authenticate()
        try:
            resp = self._send(
                "GET",
                f"{self.config.base_url}/collection/v1_0/requesttopay/{reference}",
                headers=self._headers(token),
            )
            data = resp.json()
        except (RequestException, ValueError) as e:
            self._invalidate_on_unauthorized(e)
            raise GatewayRequestError(f"MoMo status check failed: {describe_error(e)}") from e

        if not isinstance(data, dict):
            raise GatewayRequestError(f"MoMo status check failed: unexpected response {data!r}")
        return data.get("status", "")

    def payment_url(self, reference: str) -> str:
        return f"{self.config.base_url}/{reference}"

    def _invalidate_on_unauthorized(self, error: Exception) -> None:
        response = getattr(error, "response", None)
        if response is not None and response.status_code == 401:
            logger.warning("MoMo rejected cached token, dropping it")
            self.token_cache.invalidate()
