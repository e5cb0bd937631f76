"""
SQLAlchemy ORM models with base classes and mixins.

Two dimension tables (business entities and projects) and one metric table
per sync domain. Every metric table declares a named unique index over its
uniqueness key; nullable dimension references are folded into a non-null
``scope_key`` column so that aggregate and sentinel rows are unique too.
"""

from datetime import datetime, date
from typing import Dict, Any
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Boolean, Numeric, Text, ForeignKey, Index,
)
from sqlalchemy.orm import declarative_base, relationship

from .date_utils import utc_now


# Declarative base for all models
Base = declarative_base()

# scope_key values for rows without an entity/project reference
AGGREGATE_SCOPE = 'ALL'
SPECIAL_GRAND_SUMMARY = 'Grand Summary'
SPECIAL_NO_VALUE = 'No Value'


class TimestampMixin:
    """Mixin for automatic timestamp tracking"""
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)


class BaseModel:
    """Base model with common functionality"""

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Returns:
            dict: Dictionary representation of the model
        """
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            result[column.name] = value
        return result

    def __repr__(self) -> str:
        """String representation of model"""
        return f"<{self.__class__.__name__}({self.to_dict()})>"


def entity_scope(entity_id) -> str:
    """scope_key for an entity-scoped row (``ALL`` for the aggregate row)."""
    return AGGREGATE_SCOPE if entity_id is None else str(entity_id)


# ============================================================================
# Dimension Models
# ============================================================================


class BusinessEntity(Base, BaseModel, TimestampMixin):
    """
    Legal/business unit that owns metrics.

    Created by the seed script, referenced by metric rows.
    """
    __tablename__ = 'business_entities'

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_code = Column(String(20), nullable=False, comment="Short uppercase code (LDP, AI, ...)")
    entity_name = Column(String(200), nullable=False)
    entity_type = Column(Integer, default=1, nullable=False)
    currency = Column(String(3), default='AED', nullable=False)
    last_synced_at = Column(DateTime, nullable=True)

    projects = relationship('Project', back_populates='entity')

    __table_args__ = (
        Index('uq_business_entities_code', 'entity_code', unique=True),
    )


class Project(Base, BaseModel, TimestampMixin):
    """
    Real-estate project, owned by one business entity.

    May be created on first sight by the sales/revenue transformers.
    """
    __tablename__ = 'projects'

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_name = Column(String(200), nullable=False)
    project_short_name = Column(String(50), nullable=False)
    project_code = Column(String(20), nullable=False)
    entity_id = Column(Integer, ForeignKey('business_entities.id'), nullable=False)
    location = Column(String(200), nullable=True)
    project_type = Column(String(20), default='Residential', nullable=False)
    status = Column(String(30), default='Planning', nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    total_units = Column(Integer, default=0, nullable=False)
    last_synced_at = Column(DateTime, nullable=True)

    entity = relationship('BusinessEntity', back_populates='projects')

    __table_args__ = (
        Index('uq_projects_code', 'project_code', unique=True),
        Index('idx_projects_entity', 'entity_id'),
    )


# ============================================================================
# Metric Models
# ============================================================================


class FinanceReserveBank(Base, BaseModel, TimestampMixin):
    """
    Daily bank reserve position per entity.

    Data Source: Dynamics 365 bank group summary.
    entity_id NULL (scope_key 'ALL') is the cross-entity total for the day.
    """
    __tablename__ = 'finance_reserve_bank'

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(Integer, ForeignKey('business_entities.id'), nullable=True)
    scope_key = Column(String(40), nullable=False)
    date = Column(Date, nullable=False)

    escrow_reserve = Column(Numeric(18, 2), default=0, nullable=False)
    non_escrow_reserve = Column(Numeric(18, 2), default=0, nullable=False)
    other_reserve = Column(Numeric(18, 2), default=0, nullable=False)
    total_reserve = Column(Numeric(18, 2), default=0, nullable=False)
    currency = Column(String(3), default='AED', nullable=False)

    data_source = Column(String(100), nullable=False)
    last_synced_at = Column(DateTime, default=utc_now, nullable=False)

    entity = relationship('BusinessEntity')

    __table_args__ = (
        Index('uq_finance_reserve_scope_date_source', 'scope_key', 'date', 'data_source', unique=True),
        Index('idx_finance_reserve_date', 'date'),
        Index('idx_finance_reserve_entity_date', 'entity_id', 'date'),
    )


class FinanceExpensePaidout(Base, BaseModel, TimestampMixin):
    """
    Daily expense payouts per entity, split by category.

    Data Source: Dynamics 365 paidout service.
    entity_id NULL (scope_key 'ALL') is the cross-entity total for the day.
    """
    __tablename__ = 'finance_expense_paidout'

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(Integer, ForeignKey('business_entities.id'), nullable=True)
    scope_key = Column(String(40), nullable=False)
    date = Column(Date, nullable=False)

    ops_expense = Column(Numeric(18, 2), default=0, nullable=False)
    land_expense = Column(Numeric(18, 2), default=0, nullable=False)
    construction_expense = Column(Numeric(18, 2), default=0, nullable=False)
    cash_expense = Column(Numeric(18, 2), default=0, nullable=False)
    currency = Column(String(3), default='AED', nullable=False)

    data_source = Column(String(100), nullable=False)
    last_synced_at = Column(DateTime, default=utc_now, nullable=False)

    entity = relationship('BusinessEntity')

    __table_args__ = (
        Index('uq_expense_paidout_scope_date_source', 'scope_key', 'date', 'data_source', unique=True),
        Index('idx_expense_paidout_date', 'date'),
        Index('idx_expense_paidout_entity_date', 'entity_id', 'date'),
    )

    @property
    def total_expense(self):
        return (self.ops_expense or 0) + (self.land_expense or 0) + \
            (self.construction_expense or 0) + (self.cash_expense or 0)


class SalesCollection(Base, BaseModel, TimestampMixin):
    """
    Daily sales collections per entity and project.

    Data Source: Zoho Analytics collections view.
    Rows with special_type set ('Grand Summary', 'No Value') are sentinels
    with no entity/project reference.
    """
    __tablename__ = 'sales_collection'

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(Integer, ForeignKey('business_entities.id'), nullable=True)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=True)
    scope_key = Column(String(40), nullable=False)
    special_type = Column(String(20), nullable=True)
    date = Column(Date, nullable=False)

    escrow_collection = Column(Numeric(18, 2), default=0, nullable=False)
    non_escrow_collection = Column(Numeric(18, 2), default=0, nullable=False)
    mtd_escrow_collection = Column(Numeric(18, 2), default=0, nullable=False)
    mtd_non_escrow_collection = Column(Numeric(18, 2), default=0, nullable=False)

    data_source = Column(String(100), default='ZOHO SALES API', nullable=False)
    last_synced_at = Column(DateTime, default=utc_now, nullable=False)

    entity = relationship('BusinessEntity')
    project = relationship('Project')

    __table_args__ = (
        Index('uq_sales_collection_scope_date', 'scope_key', 'date', unique=True),
        Index('idx_sales_collection_date', 'date'),
        Index('idx_sales_collection_project_date', 'project_id', 'date'),
        Index('idx_sales_collection_special', 'special_type'),
    )

    @property
    def total_collection(self):
        return (self.escrow_collection or 0) + (self.non_escrow_collection or 0)


class RevenueReservation(Base, BaseModel, TimestampMixin):
    """
    Daily reservations and cancellations per project and sales team.

    Data Source: Zoho Analytics bulk export (reservations view).
    """
    __tablename__ = 'revenue_reservation'

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey('projects.id'), nullable=False)
    project_name = Column(String(200), nullable=False)
    project_short_name = Column(String(50), nullable=False)
    date = Column(Date, nullable=False)
    st_name = Column(String(100), nullable=False, comment="Sales team name")
    sales_manager_name = Column(String(100), nullable=True)
    sales_director_name = Column(String(100), nullable=True)

    reserved_amount = Column(Numeric(18, 2), default=0, nullable=False)
    reserved_units = Column(Integer, default=0, nullable=False)
    cancelled_amount = Column(Numeric(18, 2), default=0, nullable=False)
    cancelled_units = Column(Integer, default=0, nullable=False)

    type = Column(String(30), default='Reservation', nullable=False)
    currency = Column(String(3), default='AED', nullable=False)
    data_source = Column(String(100), default='ZohoAnalytics', nullable=False)
    last_synced_at = Column(DateTime, default=utc_now, nullable=False)

    project = relationship('Project')

    __table_args__ = (
        Index('uq_revenue_reservation_project_team_date', 'project_id', 'st_name', 'date', unique=True),
        Index('idx_revenue_reservation_date', 'date'),
        Index('idx_revenue_reservation_manager', 'sales_manager_name'),
        Index('idx_revenue_reservation_director', 'sales_director_name'),
    )


class ProcurementPurchaseOrder(Base, BaseModel, TimestampMixin):
    """
    Purchase order header from Dynamics 365.

    purch_id is globally unique; rows are insert-only.
    """
    __tablename__ = 'procurement_purchase_orders'

    id = Column(Integer, primary_key=True, autoincrement=True)
    purch_id = Column(String(50), nullable=False)
    entity_id = Column(Integer, ForeignKey('business_entities.id'), nullable=False)
    vendor_account = Column(String(50), nullable=False)
    vendor_name = Column(String(200), nullable=False)
    total_amount = Column(Numeric(18, 2), default=0, nullable=False)
    data_area_id = Column(String(20), nullable=False)
    currency = Column(String(3), default='AED', nullable=False)
    purchase_order_status = Column(String(30), default='None', nullable=False)
    approval_status = Column(String(30), default='Draft', nullable=False)
    created_timestamp = Column(DateTime, nullable=False)
    created_date = Column(Date, nullable=False, comment="Date part of created_timestamp")
    updated_timestamp = Column(DateTime, nullable=True)
    ai_overview = Column(Text, nullable=True)

    data_source = Column(String(30), default='Dynamics365', nullable=False)
    last_synced_at = Column(DateTime, default=utc_now, nullable=False)

    entity = relationship('BusinessEntity')

    __table_args__ = (
        Index('uq_procurement_purch_id', 'purch_id', unique=True),
        Index('idx_procurement_vendor_account', 'vendor_account'),
        Index('idx_procurement_data_area', 'data_area_id'),
        Index('idx_procurement_status', 'purchase_order_status'),
        Index('idx_procurement_approval', 'approval_status'),
        Index('idx_procurement_created_date', 'created_date'),
    )


class SocialInsight(Base, BaseModel, TimestampMixin):
    """
    Daily social media snapshot per entity and platform.

    Data Source: Windsor.ai Instagram connector.
    """
    __tablename__ = 'social_insights'

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_id = Column(Integer, ForeignKey('business_entities.id'), nullable=False)
    platform = Column(String(20), default='INSTAGRAM', nullable=False)
    date = Column(Date, nullable=False)

    total_followers = Column(Integer, default=0, nullable=False)
    new_followers = Column(Integer, default=0, nullable=False)
    total_likes = Column(Integer, default=0, nullable=False)
    new_likes = Column(Integer, default=0, nullable=False)
    total_views = Column(Integer, default=0, nullable=False)
    new_views = Column(Integer, default=0, nullable=False)
    total_reach = Column(Integer, default=0, nullable=False)
    new_reach = Column(Integer, default=0, nullable=False)
    impressions = Column(Integer, default=0, nullable=False)
    clicks = Column(Integer, default=0, nullable=False)
    engagement = Column(Integer, default=0, nullable=False)
    posts = Column(Integer, default=0, nullable=False)
    ai_overview = Column(Text, nullable=True)

    data_source = Column(String(100), default='Windsor Instagram', nullable=False)
    last_synced_at = Column(DateTime, default=utc_now, nullable=False)

    entity = relationship('BusinessEntity')

    __table_args__ = (
        Index('uq_social_insights_entity_platform_date', 'entity_id', 'platform', 'date', unique=True),
        Index('idx_social_insights_date', 'date'),
    )


class GoogleReview(Base, BaseModel, TimestampMixin):
    """
    One Google My Business review.

    Data Source: Windsor.ai google_my_business connector. The connector
    repeats the location's average rating and review count on every row.
    """
    __tablename__ = 'google_reviews'

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(String(200), nullable=False)
    date = Column(Date, nullable=True)
    reviewer = Column(String(200), default='Anonymous', nullable=False)
    comment = Column(Text, nullable=True)
    star_rating = Column(Integer, nullable=True, comment="1-5, NULL when unrated")
    avg_rating = Column(Numeric(4, 2), default=0, nullable=False)
    total_review_count = Column(Integer, default=0, nullable=False)
    sentiment = Column(String(10), nullable=True, comment="positive, neutral or negative")
    is_verified = Column(Boolean, default=False, nullable=False)

    data_source = Column(String(100), default='Windsor Google Reviews', nullable=False)
    last_synced_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index('uq_google_reviews_review_id', 'review_id', unique=True),
        Index('idx_google_reviews_date', 'date'),
        Index('idx_google_reviews_star_rating', 'star_rating'),
    )


# Tables whose uniqueness key is enforced by a named unique index,
# with the key columns (used by the index repair script)
UNIQUE_KEYS = {
    FinanceReserveBank: ('uq_finance_reserve_scope_date_source', ['scope_key', 'date', 'data_source']),
    FinanceExpensePaidout: ('uq_expense_paidout_scope_date_source', ['scope_key', 'date', 'data_source']),
    SalesCollection: ('uq_sales_collection_scope_date', ['scope_key', 'date']),
    RevenueReservation: ('uq_revenue_reservation_project_team_date', ['project_id', 'st_name', 'date']),
    ProcurementPurchaseOrder: ('uq_procurement_purch_id', ['purch_id']),
    SocialInsight: ('uq_social_insights_entity_platform_date', ['entity_id', 'platform', 'date']),
    GoogleReview: ('uq_google_reviews_review_id', ['review_id']),
}
