from typing import List

from sqlalchemy.orm import Session

from storefront.data.models.address import AddressModel
from storefront.domain.schemas import AddressCreate, AddressOut
from storefront.repos.address_repo import AddressRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class AddressService:
    def __init__(self, db: Session):
        self.repo = AddressRepo(db)

    def add_address(self, user_id: int, payload: AddressCreate) -> AddressOut:
        address = self.repo.create_address(
            AddressModel(user_id=user_id, **payload.model_dump())
        )
        logger.info(f"Address {address.id} added for user {user_id}")
        return AddressOut.model_validate(address)

    def list_addresses(self, user_id: int) -> List[AddressOut]:
        return [AddressOut.model_validate(a) for a in self.repo.list_addresses(user_id)]
