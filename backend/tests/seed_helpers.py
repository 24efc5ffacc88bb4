import sys
from datetime import datetime
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from holddesk.db.models import Base, Product, User, UserCountry, UserRole

NOW = datetime(2026, 3, 2, 12, 0, 0)


def make_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def reset_schema(engine) -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def seed_user(
    session: Session,
    *,
    name: str,
    roles: tuple[str, ...] = ("agent",),
    status: str = "approved",
    countries: tuple[str, ...] = (),
) -> int:
    user = User(
        name=name,
        email=f"{name.lower()}@example.com",
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )
    for role in roles:
        user.roles.append(UserRole(role=role))
    for country in countries:
        user.countries.append(UserCountry(country=country))
    session.add(user)
    session.flush()
    return int(user.id)


def seed_product(session: Session, *, owner_id: int, **overrides) -> int:
    values = {
        "title": "Wireless Earbuds",
        "commission": 12.5,
        "total_qty": 1,
        "daily_limit": None,
        "start_date": None,
        "end_date": None,
        "is_active": True,
        "marketplace_country": "ES",
    }
    values.update(overrides)
    product = Product(owner_id=owner_id, created_at=NOW, updated_at=NOW, **values)
    session.add(product)
    session.flush()
    return int(product.id)
