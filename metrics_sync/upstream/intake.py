"""
Typed intake rows.

Each upstream payload shape is normalized into one frozen dataclass at the
client boundary, so transformers never see provider field names. Values
that a transformer must validate (names, dates, ids) stay Optional here.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from ..common.data_utils import (
    clean_str,
    convert_to_date,
    convert_to_datetime,
    convert_to_int,
    first_present,
    parse_amount,
)


@dataclass(frozen=True)
class BankGroupRow:
    """One bank group balance line (Dynamics bank group summary)."""
    bank_group_id: str
    amount: Decimal

    @classmethod
    def from_payload(cls, row: Dict[str, Any]) -> 'BankGroupRow':
        return cls(
            bank_group_id=clean_str(row.get('BankGroupId')),
            amount=parse_amount(row.get('totalAmount')),
        )


@dataclass(frozen=True)
class PaidoutRow:
    """One paidout line (Dynamics paidout service)."""
    company: str
    operation: Decimal
    land_purchase: Decimal
    construction: Decimal
    cash: Decimal

    @classmethod
    def from_payload(cls, row: Dict[str, Any]) -> 'PaidoutRow':
        return cls(
            company=clean_str(row.get('Company')),
            operation=parse_amount(row.get('OperationPaidout')),
            land_purchase=parse_amount(row.get('LandPurchasePaidout')),
            construction=parse_amount(row.get('ConstructionPaidout')),
            cash=parse_amount(row.get('CashExpense')),
        )


@dataclass(frozen=True)
class PurchaseOrderRow:
    """One purchase order header (Dynamics procurement service)."""
    purch_id: Optional[str]
    vendor_account: Optional[str]
    vendor_name: Optional[str]
    total_amount: Optional[Decimal]
    currency: Optional[str]
    purchase_order_status: Optional[str]
    approval_status: Optional[str]
    created_at: Optional[datetime]

    @classmethod
    def from_payload(cls, row: Dict[str, Any]) -> 'PurchaseOrderRow':
        total = row.get('totalAmount')
        return cls(
            purch_id=clean_str(row.get('PurchId')) or None,
            vendor_account=clean_str(row.get('vendorAccount')) or None,
            vendor_name=clean_str(row.get('vendorName')) or None,
            total_amount=None if total is None else parse_amount(total),
            currency=clean_str(row.get('Currency')) or None,
            purchase_order_status=clean_str(row.get('PurchaseOrderStatus')) or None,
            approval_status=clean_str(row.get('ApprovalStatus')) or None,
            created_at=convert_to_datetime(row.get('CreatedDateTime')),
        )


@dataclass(frozen=True)
class CollectionRow:
    """One row of the Zoho collections view."""
    project_name: str
    payment_date: Optional[date]
    escrow: Decimal
    non_escrow: Decimal
    mtd_escrow: Decimal
    mtd_non_escrow: Decimal

    @classmethod
    def from_payload(cls, row: Dict[str, Any]) -> 'CollectionRow':
        return cls(
            project_name=' '.join(clean_str(row.get('Project Name')).split()),
            payment_date=convert_to_date(first_present(row, 'Payment Date', 'Date')),
            escrow=parse_amount(first_present(row, 'Escrow Collection (AED)', 'Escrow')),
            non_escrow=parse_amount(first_present(row, 'Non-Escrow Collection (AED)', 'Non Escrow')),
            mtd_escrow=parse_amount(row.get('MTD Escrow Collection (AED)')),
            mtd_non_escrow=parse_amount(row.get('MTD Non-Escrow Collection (AED)')),
        )


@dataclass(frozen=True)
class ReservationRow:
    """One row of the Zoho reservations bulk export."""
    project_name: str
    st_name: str
    day: Optional[date]
    reserved_amount: Decimal
    reserved_units: int
    cancelled_amount: Decimal
    cancelled_units: int
    sales_manager_name: str
    sales_director_name: str

    @classmethod
    def from_payload(cls, row: Dict[str, Any]) -> 'ReservationRow':
        return cls(
            project_name=clean_str(row.get('Project Name')),
            st_name=clean_str(row.get('ST Name')),
            day=convert_to_date(row.get('Date')),
            reserved_amount=parse_amount(row.get('Reserved AED')),
            reserved_units=convert_to_int(row.get('Reserved Units'), default=0),
            cancelled_amount=parse_amount(row.get('Cancelled AED')),
            cancelled_units=convert_to_int(row.get('Cancelled Units'), default=0),
            sales_manager_name=clean_str(row.get('Sales Manager Name')),
            sales_director_name=clean_str(row.get('Sales Director Name')),
        )


@dataclass(frozen=True)
class InstagramSnapshot:
    """Account totals plus the last day's reach (two Windsor calls merged)."""
    total_followers: int
    current_followers: int
    posts: int
    reach: int
    reach_1d: int

    @classmethod
    def from_payloads(cls, account: Dict[str, Any], daily: Dict[str, Any]) -> 'InstagramSnapshot':
        total_followers = convert_to_int(account.get('followers_count'), default=0)
        return cls(
            total_followers=total_followers,
            current_followers=convert_to_int(daily.get('followers_count'), default=0) or total_followers,
            posts=convert_to_int(account.get('media_count'), default=0),
            reach=convert_to_int(daily.get('reach'), default=0),
            reach_1d=convert_to_int(daily.get('reach_1d'), default=0),
        )


# Google My Business star rating enum -> stars
STAR_RATINGS = {'ONE': 1, 'TWO': 2, 'THREE': 3, 'FOUR': 4, 'FIVE': 5}


@dataclass(frozen=True)
class GoogleReviewRow:
    """One Google My Business review (Windsor connector)."""
    review_id: Optional[str]
    day: Optional[date]
    reviewer: str
    comment: str
    star_rating: Optional[int]
    average_rating: Decimal
    total_review_count: int

    @classmethod
    def from_payload(cls, row: Dict[str, Any]) -> 'GoogleReviewRow':
        return cls(
            review_id=clean_str(row.get('review_id')) or None,
            day=convert_to_date(row.get('date')),
            reviewer=clean_str(row.get('review_reviewer')) or 'Anonymous',
            comment=clean_str(row.get('review_comment')),
            star_rating=STAR_RATINGS.get(clean_str(row.get('review_star_rating')).upper()),
            average_rating=parse_amount(row.get('review_average_rating_total')),
            total_review_count=convert_to_int(row.get('review_total_count'), default=0),
        )

    @property
    def sentiment(self) -> str:
        """positive for 4-5 stars, negative for 1-2, neutral otherwise (unrated included)."""
        if self.star_rating is None:
            return 'neutral'
        if self.star_rating >= 4:
            return 'positive'
        if self.star_rating <= 2:
            return 'negative'
        return 'neutral'
