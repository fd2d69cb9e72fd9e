# storefront/api/deps.py
from fastapi import Request

from storefront.data.database import get_db
from storefront.services.momo_client import MomoClient

__all__ = ["get_db", "get_momo_client"]


def get_momo_client(request: Request) -> MomoClient:
    # jeden klient na aplikacje - cache tokena jest wspolny dla wszystkich requestow
    return request.app.state.momo_client
