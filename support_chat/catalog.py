"""Product catalog reads and feedback writes over SQLAlchemy Core."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    insert,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .errors import CatalogError
from .models import FeedbackRecord, FeedbackRequest
from .utils import contains_any_term

logger = logging.getLogger("support_chat.catalog")

CATALOG_APOLOGY = "Sorry, I couldn't retrieve the product information."
NO_ACTIVE_PRODUCTS = "No active products found."
CATALOG_TERMS = (
    "catalog",
    "active products",
    "product list",
    "list your products",
    "what do you sell",
)

ACTIVE_PRODUCTS_SQL = text(
    "SELECT name, description FROM products WHERE is_active = 1 ORDER BY id"
)

metadata = MetaData()

products_table = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("is_active", Boolean, nullable=False, default=True),
)

feedback_table = Table(
    "feedback",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("response_id", String(128), nullable=False),
    Column("original_response", Text, nullable=False),
    Column("corrected_response", Text, nullable=False),
    Column("context", Text, nullable=True),
    Column("save_globally", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=False),
)


@dataclass(frozen=True)
class CatalogProduct:
    """Active catalog row as shown to the user."""
    name: str
    description: str

    def render(self) -> str:
        return f"{self.name}: {self.description}"


def build_engine(database_url: str) -> Engine:
    """Purpose: Create the SQLAlchemy engine for the catalog database.
    Inputs/Outputs: Input is a database URL; output is an Engine.
    Side Effects / State: Allocates a connection pool (no connection yet).
    Dependencies: create_engine; in-memory sqlite gets a StaticPool so tables persist.
    Failure Modes: Unknown dialects or missing drivers raise at creation.
    If Removed: Catalog listing and feedback storage cannot run.
    Testing Notes: build_engine("sqlite://") shares one connection across calls.
    """
    # In-memory sqlite needs one shared connection; servers get pre-ping + recycle.
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False}, future=True)
    return create_engine(database_url, pool_pre_ping=True, pool_recycle=1800, future=True)


def create_schema(engine: Engine) -> None:
    """Create the products and feedback tables when they are missing."""
    metadata.create_all(engine)


class ProductCatalog:
    """Read-only view over the active products table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def active_products(self) -> List[CatalogProduct]:
        """Purpose: Return every active product row.
        Inputs/Outputs: No inputs; returns CatalogProduct list in id order.
        Side Effects / State: One SELECT on a pooled connection.
        Dependencies: ACTIVE_PRODUCTS_SQL.
        Failure Modes: SQLAlchemy errors raise CatalogError.
        If Removed: The catalog route has no data.
        Testing Notes: Inactive rows are excluded.
        """
        # Plain SQL keeps the query identical across MySQL and sqlite.
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(ACTIVE_PRODUCTS_SQL).all()
        except SQLAlchemyError as exc:
            logger.error("catalog query failed error=%s", exc)
            raise CatalogError("Catalog query failed") from exc
        return [CatalogProduct(name=row.name, description=row.description or "") for row in rows]

    def listing_reply(self) -> str:
        """Purpose: Build the assistant reply listing active products.
        Inputs/Outputs: No inputs; returns reply text.
        Side Effects / State: Queries the database.
        Dependencies: active_products.
        Failure Modes: CatalogError is recovered into CATALOG_APOLOGY.
        If Removed: Catalog questions fall through to the website cache or LLM.
        Testing Notes: Drop the products table and expect the apology text.
        """
        # Query failures become the fixed apology; empty catalogs say so.
        try:
            products = self.active_products()
        except CatalogError:
            return CATALOG_APOLOGY
        if not products:
            return NO_ACTIVE_PRODUCTS
        lines = "\n".join(product.render() for product in products)
        return f"Here are our active products:\n{lines}"


class FeedbackRepository:
    """Append-only store for corrected assistant replies."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def save(self, request: FeedbackRequest, created_at: Optional[datetime] = None) -> FeedbackRecord:
        """Purpose: Insert one feedback row and return the stored record.
        Inputs/Outputs: Input is FeedbackRequest; output is FeedbackRecord with id.
        Side Effects / State: One INSERT in its own transaction.
        Dependencies: feedback_table.
        Failure Modes: SQLAlchemy errors raise CatalogError.
        If Removed: Staff corrections are lost.
        Testing Notes: Saved ids increase; created_at is timezone-naive UTC.
        """
        # Store UTC without tzinfo so MySQL DATETIME and sqlite agree.
        stamp = created_at or datetime.now(timezone.utc).replace(tzinfo=None)
        values = {
            "response_id": request.response_id,
            "original_response": request.original_response,
            "corrected_response": request.corrected_response,
            "context": request.context,
            "save_globally": request.save_globally,
            "created_at": stamp,
        }
        try:
            with self._engine.begin() as conn:
                result = conn.execute(insert(feedback_table).values(**values))
                record_id = result.inserted_primary_key[0]
        except SQLAlchemyError as exc:
            logger.error("feedback insert failed response_id=%s error=%s", request.response_id, exc)
            raise CatalogError("Feedback insert failed") from exc
        logger.info("feedback stored id=%s response_id=%s", record_id, request.response_id)
        return FeedbackRecord(id=record_id, **values)


def is_catalog_request(message: str) -> bool:
    return contains_any_term(message, CATALOG_TERMS)
