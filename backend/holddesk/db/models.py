from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    telegram_username = Column(String, nullable=True)
    paypal = Column(String, nullable=True)

    status = Column(String, nullable=False, default="pending")  # pending | approved | blocked

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    roles = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    countries = relationship(
        "UserCountry",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    products = relationship("Product", back_populates="owner")


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(String, nullable=False)  # admin | seller | agent

    user = relationship("User", back_populates="roles")


class UserCountry(Base):
    __tablename__ = "user_countries"
    __table_args__ = (
        UniqueConstraint("user_id", "country", name="uq_user_countries_user_country"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    country = Column(String, nullable=False)

    user = relationship("User", back_populates="countries")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("total_qty >= 0", name="ck_products_total_qty_non_negative"),
        CheckConstraint(
            "daily_limit IS NULL OR daily_limit > 0",
            name="ck_products_daily_limit_positive",
        ),
        CheckConstraint("commission >= 0", name="ck_products_commission_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)

    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    title = Column(String, nullable=False)
    asin = Column(String, nullable=True)
    amazon_url = Column(String, nullable=True)
    main_image_url = Column(String, nullable=True)
    price = Column(Float, nullable=True)
    commission = Column(Float, nullable=False, default=0)

    total_qty = Column(Integer, nullable=False, default=1)
    daily_limit = Column(Integer, nullable=True)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    marketplace_country = Column(String, nullable=True)  # ES | DE | FR | IT | UK

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    owner = relationship("User", back_populates="products")
    holds = relationship("Hold", back_populates="product")
    blocked_agents = relationship(
        "ProductBlockedAgent",
        back_populates="product",
        cascade="all, delete-orphan",
    )
    commission_overrides = relationship(
        "CommissionOverride",
        back_populates="product",
        cascade="all, delete-orphan",
    )


class ProductBlockedAgent(Base):
    __tablename__ = "product_blocked_agents"
    __table_args__ = (
        UniqueConstraint(
            "product_id",
            "agent_id",
            name="uq_product_blocked_agents_product_agent",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    agent_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="blocked_agents")


class CommissionOverride(Base):
    __tablename__ = "commission_overrides"
    __table_args__ = (
        UniqueConstraint(
            "product_id",
            "agent_id",
            name="uq_commission_overrides_product_agent",
        ),
        CheckConstraint(
            "commission >= 0",
            name="ck_commission_overrides_commission_non_negative",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    agent_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    commission = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="commission_overrides")


class Hold(Base):
    __tablename__ = "holds"
    __table_args__ = (
        Index("ix_holds_product_status_expires", "product_id", "status", "expires_at"),
        Index("ix_holds_agent_product_status", "agent_id", "product_id", "status"),
        Index("ix_holds_status_expires", "status", "expires_at"),
        Index(
            "uq_holds_active_per_agent_product",
            "agent_id",
            "product_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    agent_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status = Column(String, nullable=False, default="active")  # active | expired | converted | cancelled
    extended = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    released_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    product = relationship("Product", back_populates="holds")
    agent = relationship("User")
    deal = relationship("Deal", back_populates="hold", uselist=False)


class Deal(Base):
    __tablename__ = "deals"
    __table_args__ = (
        Index("ix_deals_agent_status", "agent_id", "status"),
        Index("ix_deals_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hold_id = Column(
        Integer,
        ForeignKey("holds.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    agent_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status = Column(String, nullable=False, default="sold_submitted")

    customer_name = Column(String, nullable=True)
    customer_paypal = Column(String, nullable=True)
    customer_telegram = Column(String, nullable=True)
    amazon_profile_url = Column(String, nullable=True)

    order_screenshot_path = Column(String, nullable=True)
    review_link = Column(String, nullable=True)
    review_screenshot_path = Column(String, nullable=True)

    commission = Column(Float, nullable=False, default=0)
    admin_note = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    hold = relationship("Hold", back_populates="deal")
    product = relationship("Product")
    agent = relationship("User")
    commission_credit = relationship(
        "CommissionCredit",
        back_populates="deal",
        uselist=False,
    )


class CommissionCredit(Base):
    __tablename__ = "commission_credits"

    id = Column(Integer, primary_key=True, index=True)
    deal_id = Column(
        Integer,
        ForeignKey("deals.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    agent_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    deal = relationship("Deal", back_populates="commission_credit")
