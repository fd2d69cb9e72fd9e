from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.domain.schemas import AddressCreate, AddressOut
from storefront.services.address_service import AddressService

router = APIRouter(prefix="/addresses", tags=["addresses"])


@router.post("", response_model=AddressOut, status_code=201)
def add_address(
    payload: AddressCreate,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    return AddressService(db).add_address(user_id, payload)


@router.get("", response_model=List[AddressOut])
def list_addresses(user_id: int = Query(...), db: Session = Depends(get_db)):
    return AddressService(db).list_addresses(user_id)
