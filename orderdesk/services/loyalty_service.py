"""
Loyalty points - settings, redemption selection and the points ledger.

`select_redemption` and friends are pure and run on every draft change;
the persistent operations below them write the balance row and a history
entry in the caller's session.
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from orderdesk.exceptions import (
    BusinessLogicError, NotFoundError, ValidationError,
    InsufficientPointsError, RedemptionBelowMinimumError
)
from orderdesk.models import Customer, CustomerLoyaltyPoints, LoyaltyPointsHistory, PointsTransactionType
from orderdesk.services import settings_service

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
HUNDRED = Decimal('100')

DEFAULT_LOYALTY_SETTINGS = {
    'loyalty_enabled': {
        'value': 'false', 'type': 'boolean',
        'description': 'Enable or disable the loyalty points system',
    },
    'points_earning_rate': {
        'value': '1', 'type': 'number',
        'description': 'Points earned per currency unit spent',
    },
    'points_earning_basis': {
        'value': 'subtotal', 'type': 'string',
        'description': "Amount points are earned on: 'subtotal' or 'total'",
    },
    'points_redemption_value': {
        'value': '0.01', 'type': 'number',
        'description': 'Currency value per point when redeeming (e.g., 1 point = $0.01)',
    },
    'points_expiry_months': {
        'value': '12', 'type': 'number',
        'description': 'Months before earned points expire (0 = never)',
    },
    'points_minimum_order': {
        'value': '0', 'type': 'number',
        'description': 'Minimum order amount to earn points',
    },
    'points_max_redemption_percent': {
        'value': '50', 'type': 'number',
        'description': 'Maximum percentage of an order payable with points',
    },
    'points_redemption_minimum': {
        'value': '100', 'type': 'number',
        'description': 'Minimum points required for a redemption',
    },
}


@dataclass(frozen=True)
class LoyaltySettings:
    enabled: bool = False
    earning_rate: Decimal = Decimal('1')
    earning_basis: str = 'subtotal'
    redemption_value: Decimal = Decimal('0.01')
    expiry_months: int = 12
    minimum_order: Decimal = ZERO
    max_redemption_percent: Decimal = Decimal('50')
    redemption_minimum: int = 100

    @classmethod
    def from_settings(cls, values: Dict[str, Any]) -> 'LoyaltySettings':
        """Build from a typed settings dict; zero or missing numbers fall back to defaults."""
        defaults = cls()

        def number(key, default):
            value = values.get(key)
            return Decimal(value) if value else default

        basis = values.get('points_earning_basis') or defaults.earning_basis
        if basis not in ('subtotal', 'total'):
            logger.warning(f"Unknown points earning basis {basis!r}; using 'subtotal'")
            basis = 'subtotal'

        return cls(
            enabled=values.get('loyalty_enabled') is True,
            earning_rate=number('points_earning_rate', defaults.earning_rate),
            earning_basis=basis,
            redemption_value=number('points_redemption_value', defaults.redemption_value),
            expiry_months=int(number('points_expiry_months', Decimal(defaults.expiry_months))),
            minimum_order=number('points_minimum_order', defaults.minimum_order),
            max_redemption_percent=number('points_max_redemption_percent', defaults.max_redemption_percent),
            redemption_minimum=int(number('points_redemption_minimum', Decimal(defaults.redemption_minimum))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'earning_rate': str(self.earning_rate),
            'earning_basis': self.earning_basis,
            'redemption_value': str(self.redemption_value),
            'expiry_months': self.expiry_months,
            'minimum_order': str(self.minimum_order),
            'max_redemption_percent': str(self.max_redemption_percent),
            'redemption_minimum': self.redemption_minimum,
        }


@dataclass(frozen=True)
class RedemptionSelection:
    points_to_redeem: int
    points_discount_amount: Decimal
    use_all_points: bool = False


# =====================================================
# PURE SELECTION
# =====================================================

def max_redeemable_discount(settings: LoyaltySettings, subtotal: Decimal, discounts: Decimal) -> Decimal:
    """Largest discount points may cover: a share of what is left after other discounts."""
    base = subtotal - discounts
    return max(ZERO, base * settings.max_redemption_percent / HUNDRED)


def _points_for(discount: Decimal, settings: LoyaltySettings) -> int:
    if settings.redemption_value <= 0:
        return 0
    return int((discount / settings.redemption_value).to_integral_value(rounding=ROUND_FLOOR))


def select_redemption(
    requested_points: int,
    available_points: int,
    settings: LoyaltySettings,
    subtotal: Decimal,
    discounts: Decimal = ZERO,
) -> RedemptionSelection:
    """
    Clamp a points request and price it.

    The discount is capped by `max_redemption_percent` of (subtotal -
    discounts); points are then recomputed from the final discount so the
    two never disagree by more than one point's value.
    """
    points = max(0, min(int(requested_points), int(available_points)))
    raw_discount = points * settings.redemption_value
    final_discount = min(raw_discount, max_redeemable_discount(settings, subtotal, discounts))
    return RedemptionSelection(
        points_to_redeem=_points_for(final_discount, settings),
        points_discount_amount=final_discount,
    )


def select_max_redemption(
    available_points: int,
    settings: LoyaltySettings,
    subtotal: Decimal,
    discounts: Decimal = ZERO,
) -> RedemptionSelection:
    """The "use all available points" choice."""
    selection = select_redemption(available_points, available_points, settings, subtotal, discounts)
    return RedemptionSelection(
        points_to_redeem=selection.points_to_redeem,
        points_discount_amount=selection.points_discount_amount,
        use_all_points=True,
    )


def validate_redemption(points: int, available_points: int, settings: LoyaltySettings) -> List[str]:
    """Messages that block submitting a redemption (empty when valid or no points)."""
    if points <= 0:
        return []
    errors = []
    if points > available_points:
        errors.append('Insufficient points available')
    if points < settings.redemption_minimum:
        errors.append(f'Minimum {settings.redemption_minimum} points required for redemption')
    return errors


def _add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# =====================================================
# PERSISTENT OPERATIONS
# =====================================================

def get_loyalty_settings(session: Session) -> LoyaltySettings:
    return LoyaltySettings.from_settings(settings_service.get_settings(session))


def get_customer_points(session: Session, customer_id: int) -> CustomerLoyaltyPoints:
    """Balance row for a customer, created on first access."""
    customer = session.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError(f'Customer {customer_id} not found')

    balance = session.query(CustomerLoyaltyPoints).filter(
        CustomerLoyaltyPoints.customer_id == customer_id
    ).first()
    if not balance:
        balance = CustomerLoyaltyPoints(
            customer_id=customer_id,
            available_points=0,
            total_points_earned=0,
            total_points_redeemed=0
        )
        session.add(balance)
        session.flush()
    return balance


def redeem_points(
    session: Session,
    customer_id: int,
    points_to_redeem: int,
    discount_amount: Decimal,
    settings: LoyaltySettings,
    order_id: Optional[int] = None,
    description: Optional[str] = None,
) -> LoyaltyPointsHistory:
    """
    Deduct points from a customer's balance.

    Flushes but does not commit; the caller owns the transaction.
    """
    balance = get_customer_points(session, customer_id)

    if points_to_redeem <= 0:
        raise ValidationError('Points to redeem must be greater than 0')
    if balance.available_points < points_to_redeem:
        raise InsufficientPointsError(points_to_redeem, balance.available_points)
    if points_to_redeem < settings.redemption_minimum:
        raise RedemptionBelowMinimumError(points_to_redeem, settings.redemption_minimum)

    now = datetime.now(timezone.utc)
    balance.available_points -= points_to_redeem
    balance.total_points_redeemed += points_to_redeem
    balance.last_redeemed_at = now

    entry = LoyaltyPointsHistory(
        customer_id=customer_id,
        order_id=order_id,
        transaction_type=PointsTransactionType.REDEEMED,
        points=-points_to_redeem,
        points_balance=balance.available_points,
        description=description or 'Redeemed at checkout',
        discount_amount=discount_amount,
    )
    session.add(entry)
    session.flush()

    logger.info(f"Customer {customer_id} redeemed {points_to_redeem} points for {discount_amount}")
    return entry


def award_points(
    session: Session,
    customer_id: int,
    order_amount: Decimal,
    subtotal_amount: Decimal,
    settings: LoyaltySettings,
    order_id: Optional[int] = None,
    description: Optional[str] = None,
) -> Optional[LoyaltyPointsHistory]:
    """
    Credit points for an order.

    Returns None when nothing is earned (loyalty off, below minimum order,
    or zero points after flooring).
    """
    if not settings.enabled:
        raise BusinessLogicError('Loyalty points system is disabled')

    base_amount = order_amount if settings.earning_basis == 'total' else subtotal_amount
    if base_amount < settings.minimum_order:
        logger.info(f"Order amount {base_amount} below minimum {settings.minimum_order}; no points")
        return None

    points = int((base_amount * settings.earning_rate).to_integral_value(rounding=ROUND_FLOOR))
    if points <= 0:
        return None

    balance = get_customer_points(session, customer_id)
    now = datetime.now(timezone.utc)
    expires_at = _add_months(now, settings.expiry_months) if settings.expiry_months > 0 else None

    balance.available_points += points
    balance.total_points_earned += points
    balance.last_earned_at = now

    entry = LoyaltyPointsHistory(
        customer_id=customer_id,
        order_id=order_id,
        transaction_type=PointsTransactionType.EARNED,
        points=points,
        points_balance=balance.available_points,
        description=description or (f'Earned from order #{order_id}' if order_id else 'Points earned'),
        order_amount=base_amount,
        expires_at=expires_at,
    )
    session.add(entry)
    session.flush()

    logger.info(f"Customer {customer_id} earned {points} points (basis={settings.earning_basis})")
    return entry


def manual_adjustment(session: Session, customer_id: int, points: int, reason: Optional[str] = None) -> LoyaltyPointsHistory:
    """Admin correction; positive adds, negative removes (never below zero)."""
    if points == 0:
        raise ValidationError('Adjustment points must not be 0')

    balance = get_customer_points(session, customer_id)
    if balance.available_points + points < 0:
        raise InsufficientPointsError(-points, balance.available_points)

    balance.available_points += points
    if points > 0:
        balance.total_points_earned += points

    entry = LoyaltyPointsHistory(
        customer_id=customer_id,
        transaction_type=PointsTransactionType.MANUAL_ADJUSTMENT,
        points=points,
        points_balance=balance.available_points,
        description=reason or 'Manual adjustment',
    )
    session.add(entry)
    session.flush()
    return entry


def adjust_order_redemption(
    session: Session,
    customer_id: int,
    order_id: int,
    previous_points: int,
    new_points: int,
    discount_amount: Decimal,
    settings: LoyaltySettings,
) -> Optional[LoyaltyPointsHistory]:
    """
    Move the balance when an edited order redeems a different number of points.

    Extra points are redeemed; released points go back to the customer.
    """
    delta = new_points - previous_points
    if delta == 0:
        return None
    if 0 < new_points < settings.redemption_minimum:
        raise RedemptionBelowMinimumError(new_points, settings.redemption_minimum)

    balance = get_customer_points(session, customer_id)
    if delta > 0 and balance.available_points < delta:
        raise InsufficientPointsError(delta, balance.available_points)

    balance.available_points -= delta
    balance.total_points_redeemed = max(0, balance.total_points_redeemed + delta)
    if delta > 0:
        balance.last_redeemed_at = datetime.now(timezone.utc)

    entry = LoyaltyPointsHistory(
        customer_id=customer_id,
        order_id=order_id,
        transaction_type=PointsTransactionType.REDEEMED if delta > 0 else PointsTransactionType.MANUAL_ADJUSTMENT,
        points=-delta,
        points_balance=balance.available_points,
        description=f'Redemption changed on order #{order_id}: {previous_points} -> {new_points} points',
        discount_amount=discount_amount,
    )
    session.add(entry)
    session.flush()
    return entry


def revoke_order_points(session: Session, customer_id: int, order_id: int) -> Optional[LoyaltyPointsHistory]:
    """
    Take back the points an order earned, when a completed order is cancelled.

    Points already spent cannot be taken back, so the removal is capped at
    the available balance.
    """
    earned = session.query(LoyaltyPointsHistory).filter(
        LoyaltyPointsHistory.order_id == order_id,
        LoyaltyPointsHistory.transaction_type == PointsTransactionType.EARNED,
        LoyaltyPointsHistory.is_expired.is_(False),
    ).all()
    if not earned:
        return None

    balance = get_customer_points(session, customer_id)
    points = min(sum(record.points for record in earned), balance.available_points)
    # Keep the expiry job from removing them a second time
    for record in earned:
        record.is_expired = True
    if points <= 0:
        session.flush()
        return None

    balance.available_points -= points
    balance.total_points_earned = max(0, balance.total_points_earned - points)

    entry = LoyaltyPointsHistory(
        customer_id=customer_id,
        order_id=order_id,
        transaction_type=PointsTransactionType.MANUAL_ADJUSTMENT,
        points=-points,
        points_balance=balance.available_points,
        description=f'Points earned on order #{order_id} revoked',
    )
    session.add(entry)
    session.flush()

    logger.info(f"Customer {customer_id} lost {points} points earned on cancelled order {order_id}")
    return entry


def expire_points(session: Session, now: Optional[datetime] = None) -> int:
    """
    Expire earned points whose expiry date has passed.

    Returns the number of points removed across all customers.
    """
    now = now or datetime.now(timezone.utc)
    due = session.query(LoyaltyPointsHistory).filter(
        LoyaltyPointsHistory.transaction_type == PointsTransactionType.EARNED,
        LoyaltyPointsHistory.is_expired.is_(False),
        LoyaltyPointsHistory.expires_at.isnot(None),
        LoyaltyPointsHistory.expires_at <= now,
    ).all()

    expired_total = 0
    for record in due:
        balance = get_customer_points(session, record.customer_id)
        to_expire = min(record.points, balance.available_points)
        record.is_expired = True
        if to_expire <= 0:
            continue

        balance.available_points -= to_expire
        session.add(LoyaltyPointsHistory(
            customer_id=record.customer_id,
            order_id=record.order_id,
            transaction_type=PointsTransactionType.EXPIRED,
            points=-to_expire,
            points_balance=balance.available_points,
            description=f'Expired points from entry #{record.id}',
        ))
        expired_total += to_expire

    session.flush()
    if expired_total:
        logger.info(f"Expired {expired_total} points from {len(due)} entries")
    return expired_total
