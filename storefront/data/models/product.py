from sqlalchemy import CheckConstraint, Column, Integer, Numeric, String

from storefront.data.database import Base


class ProductModel(Base):
    """
    Produkt widziany przez przeplyw zamowien.

    stock - sztuki do sprzedazy
    reserved_stock - sztuki trzymane dla zamowien MoMo czekajacych na platnosc
    """

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_product_reserved_non_negative"),
        CheckConstraint("stock - reserved_stock >= 0", name="ck_product_reserved_within_stock"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)

    price = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(5, 2), nullable=True)  # procent albo null

    stock = Column(Integer, nullable=False, default=0)
    reserved_stock = Column(Integer, nullable=False, default=0)
