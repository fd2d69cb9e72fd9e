# storefront/data/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.utils.settings import DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    # sqlite w pamieci: jedno polaczenie dzielone miedzy watkami (testy, dev)
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autoflush=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    # rejestracja wszystkich modeli w Base.metadata przed create_all
    import storefront.data.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
