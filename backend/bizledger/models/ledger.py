import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import CHAR, TypeDecorator

Base = declarative_base()


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value if dialect.name == "postgresql" else str(value)
        if isinstance(value, str):
            try:
                parsed = uuid.UUID(value)
            except ValueError:
                return value
            return parsed if dialect.name == "postgresql" else str(parsed)
        return value

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(value)
        except ValueError:
            return value


UUID_TYPE = GUID()
JSON_TYPE = JSON().with_variant(JSONB, "postgresql")
INET_TYPE = String(45).with_variant(INET, "postgresql")

RECURRENCE_VALUES = "('once','monthly','quarterly','yearly')"


class Business(Base):
    __tablename__ = "businesses"
    __table_args__ = (UniqueConstraint("user_id", name="uniq_business_owner"),)

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    # Owner id as issued by the external identity provider.
    user_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    fiscal_start_date = Column(Date, nullable=False)
    currency = Column(String(3), nullable=False, default="USD", server_default=text("'USD'"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_expense_amount_non_negative"),
        CheckConstraint(f"recurrence IN {RECURRENCE_VALUES}", name="chk_expense_recurrence"),
        CheckConstraint("tax_deductible IN ('yes','no','partial')", name="chk_expense_tax_deductible"),
        Index("idx_expense_business_date", "business_id", "date"),
    )

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    business_id = Column(UUID_TYPE, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(Date, nullable=False)
    category = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    notes = Column(Text)
    payment_method = Column(String(64))
    vendor = Column(Text, nullable=False)
    receipt_url = Column(Text)
    recurrence = Column(String(16), nullable=False, default="once", server_default=text("'once'"))
    tax_deductible = Column(String(16), nullable=False, default="yes", server_default=text("'yes'"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Income(Base):
    __tablename__ = "incomes"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_income_amount_non_negative"),
        CheckConstraint(f"recurrence IN {RECURRENCE_VALUES}", name="chk_income_recurrence"),
        Index("idx_income_business_date", "business_id", "date"),
    )

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    business_id = Column(UUID_TYPE, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(Date, nullable=False)
    category = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    notes = Column(Text)
    payment_method = Column(String(64))
    client = Column(Text, nullable=False)
    invoice_number = Column(String(64))
    recurrence = Column(String(16), nullable=False, default="once", server_default=text("'once'"))
    tax_withheld = Column(Numeric(12, 2), nullable=False, default=0, server_default=text("0"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Asset(Base):
    __tablename__ = "assets"
    __table_args__ = (
        CheckConstraint("current_value >= 0", name="chk_asset_current_value_non_negative"),
        CheckConstraint("purchase_value >= 0", name="chk_asset_purchase_value_non_negative"),
        Index("idx_asset_business", "business_id"),
    )

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    business_id = Column(UUID_TYPE, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False)  # equipment, property, vehicle, investment, ...
    current_value = Column(Numeric(12, 2), nullable=False)
    purchase_value = Column(Numeric(12, 2), nullable=False)
    purchase_date = Column(Date, nullable=False)
    depreciation_rate = Column(Numeric(5, 2), default=0, server_default=text("0"))
    location = Column(Text)
    description = Column(Text)
    documents = Column(JSON_TYPE, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TransactionCategory(Base):
    __tablename__ = "transaction_categories"
    __table_args__ = (
        CheckConstraint("type IN ('expense','income')", name="chk_txn_category_type"),
        UniqueConstraint("business_id", "type", "name", name="uniq_txn_category_name"),
    )

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    business_id = Column(UUID_TYPE, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    type = Column(String(16), nullable=False)
    color = Column(String(16), default="#22c55e", server_default=text("'#22c55e'"))
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(
        UUID_TYPE,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(UUID_TYPE, nullable=False)
    action = Column(String(64), nullable=False)
    old_value = Column(JSON_TYPE)
    new_value = Column(JSON_TYPE)
    actor_type = Column(String(50), nullable=False)
    actor_id = Column(String(255))
    ip_address = Column(INET_TYPE)
    user_agent = Column(Text)
    audit_meta = Column("metadata", JSON_TYPE, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
