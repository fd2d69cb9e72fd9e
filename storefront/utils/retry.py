# storefront/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import requests
import redis

# bledy transportu - odpowiedz HTTP z bledem nie jest ponawiana
TRANSPORT_ERRORS = (requests.ConnectionError, requests.Timeout)

# request na pewno nie doszedl do serwera (ConnectTimeout jest tez ConnectionError)
NOT_DELIVERED_ERRORS = (requests.ConnectionError,)


def http_retry(attempts: int = 2, retry_on: tuple = TRANSPORT_ERRORS):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(retry_on),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )
