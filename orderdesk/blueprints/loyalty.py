"""Loyalty JSON API - settings, customer balances and ledger actions."""
from typing import Any, Dict, Tuple

from flask import Blueprint, request, jsonify, current_app, Response

from orderdesk.database import get_session
from orderdesk.exceptions import BusinessLogicError, ValidationError
from orderdesk.models import LoyaltyPointsHistory
from orderdesk.services import loyalty_service, settings_service
from orderdesk.utils.formatters import to_json_value
from orderdesk.utils.number_format import parse_amount, parse_int

loyalty_bp = Blueprint('loyalty', __name__, url_prefix='/api/loyalty')

HISTORY_LIMIT = 50


@loyalty_bp.route('/settings', methods=['GET'])
def get_settings() -> Tuple[Response, int]:
    db_session = get_session()
    settings = loyalty_service.get_loyalty_settings(db_session)
    return jsonify({'status': 'success', 'settings': settings.to_dict()}), 200


@loyalty_bp.route('/settings', methods=['POST'])
def save_settings() -> Tuple[Response, int]:
    """
    Update loyalty settings.

    Body: {"loyalty_enabled": true, "points_earning_rate": "2", ...}; only
    known loyalty keys are accepted.
    """
    db_session = get_session()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not payload:
        raise ValidationError('Request body must be a non-empty JSON object')

    unknown = sorted(set(payload) - set(loyalty_service.DEFAULT_LOYALTY_SETTINGS))
    if unknown:
        raise ValidationError([f'Unknown loyalty setting: {key}' for key in unknown])

    settings_service.save_settings(db_session, {
        key: {
            'value': value,
            'type': loyalty_service.DEFAULT_LOYALTY_SETTINGS[key]['type'],
            'description': loyalty_service.DEFAULT_LOYALTY_SETTINGS[key]['description'],
        }
        for key, value in payload.items()
    })
    current_app.logger.info(f"[loyalty] settings updated: {sorted(payload)}")

    settings = loyalty_service.get_loyalty_settings(db_session)
    return jsonify({'status': 'success', 'settings': settings.to_dict()}), 200


@loyalty_bp.route('/points/<int:customer_id>', methods=['GET'])
def customer_points(customer_id: int) -> Tuple[Response, int]:
    """Balance and most recent ledger entries of a customer."""
    db_session = get_session()
    balance = loyalty_service.get_customer_points(db_session, customer_id)
    db_session.commit()

    history = db_session.query(LoyaltyPointsHistory).filter(
        LoyaltyPointsHistory.customer_id == customer_id
    ).order_by(LoyaltyPointsHistory.id.desc()).limit(HISTORY_LIMIT).all()

    return jsonify(to_json_value({
        'status': 'success',
        'points': _balance_dict(balance),
        'history': [_history_dict(entry) for entry in history],
    })), 200


@loyalty_bp.route('/points', methods=['POST'])
def points_action() -> Tuple[Response, int]:
    """
    Run a ledger action.

    Body: {"action": "award_points" | "redeem_points" | "manual_adjustment" |
    "expire_points", "customer_id": 1, ...action fields}
    """
    db_session = get_session()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')

    action = payload.get('action')
    if not action:
        raise ValidationError('Action is required')
    handler = _ACTIONS.get(action)
    if handler is None:
        raise ValidationError(f'Invalid action: {action}')

    current_app.logger.info(f"[loyalty] action={action} customer_id={payload.get('customer_id')}")
    try:
        result = handler(db_session, payload)
        db_session.commit()
    except Exception:
        db_session.rollback()
        raise

    return jsonify(to_json_value({'status': 'success', 'action': action, **result})), 200


# =====================================================
# ACTIONS
# =====================================================

def _customer_id(payload: Dict[str, Any]) -> int:
    try:
        customer_id = parse_int(payload.get('customer_id'), 'customer_id', default=None)
    except ValueError as e:
        raise ValidationError(str(e))
    if customer_id is None:
        raise ValidationError('customer_id is required')
    return customer_id


def _award(db_session, payload: Dict[str, Any]) -> Dict[str, Any]:
    customer_id = _customer_id(payload)
    try:
        order_amount = parse_amount(payload.get('order_amount'), 'order_amount')
        subtotal_amount = parse_amount(payload.get('subtotal_amount', payload.get('order_amount')), 'subtotal_amount')
        order_id = parse_int(payload.get('order_id'), 'order_id', default=None)
    except ValueError as e:
        raise ValidationError(str(e))

    settings = loyalty_service.get_loyalty_settings(db_session)
    entry = loyalty_service.award_points(
        db_session, customer_id, order_amount, subtotal_amount, settings,
        order_id=order_id, description=payload.get('description')
    )
    balance = loyalty_service.get_customer_points(db_session, customer_id)
    return {
        'points_earned': entry.points if entry else 0,
        'points': _balance_dict(balance),
    }


def _redeem(db_session, payload: Dict[str, Any]) -> Dict[str, Any]:
    customer_id = _customer_id(payload)
    try:
        points = parse_int(payload.get('points_to_redeem'), 'points_to_redeem')
        order_id = parse_int(payload.get('order_id'), 'order_id', default=None)
    except ValueError as e:
        raise ValidationError(str(e))

    settings = loyalty_service.get_loyalty_settings(db_session)
    if not settings.enabled:
        raise BusinessLogicError('Loyalty points system is disabled')

    discount_amount = points * settings.redemption_value
    loyalty_service.redeem_points(
        db_session, customer_id, points, discount_amount, settings,
        order_id=order_id, description=payload.get('description')
    )
    balance = loyalty_service.get_customer_points(db_session, customer_id)
    return {
        'points_redeemed': points,
        'discount_amount': discount_amount,
        'points': _balance_dict(balance),
    }


def _adjust(db_session, payload: Dict[str, Any]) -> Dict[str, Any]:
    customer_id = _customer_id(payload)
    try:
        points = parse_int(payload.get('points'), 'points')
    except ValueError as e:
        raise ValidationError(str(e))

    loyalty_service.manual_adjustment(db_session, customer_id, points, reason=payload.get('description'))
    balance = loyalty_service.get_customer_points(db_session, customer_id)
    return {'points_adjusted': points, 'points': _balance_dict(balance)}


def _expire(db_session, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {'points_expired': loyalty_service.expire_points(db_session)}


_ACTIONS = {
    'award_points': _award,
    'redeem_points': _redeem,
    'manual_adjustment': _adjust,
    'expire_points': _expire,
}


def _balance_dict(balance) -> Dict[str, Any]:
    return {
        'customer_id': balance.customer_id,
        'available_points': balance.available_points,
        'total_points_earned': balance.total_points_earned,
        'total_points_redeemed': balance.total_points_redeemed,
        'last_earned_at': balance.last_earned_at,
        'last_redeemed_at': balance.last_redeemed_at,
    }


def _history_dict(entry: LoyaltyPointsHistory) -> Dict[str, Any]:
    return {
        'id': entry.id,
        'order_id': entry.order_id,
        'transaction_type': entry.transaction_type,
        'points': entry.points,
        'points_balance': entry.points_balance,
        'description': entry.description,
        'order_amount': entry.order_amount,
        'discount_amount': entry.discount_amount,
        'expires_at': entry.expires_at,
        'is_expired': entry.is_expired,
        'created_at': entry.created_at,
    }
