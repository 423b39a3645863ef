"""Orders JSON API - line item resolution, draft pricing and order persistence."""
from decimal import Decimal
from typing import Any, Dict, Tuple

from flask import Blueprint, request, jsonify, current_app, Response

from orderdesk.database import get_session
from orderdesk.exceptions import ValidationError
from orderdesk.services import loyalty_service, order_service
from orderdesk.services.order_draft_service import (
    OrderDraft, add_item, apply_points, clear_points, draft_from_dict, draft_to_dict,
    draft_totals, line_item_to_dict, resolve_line_item, toggle_use_all_points
)
from orderdesk.services.pricing_service import calculate_points_to_earn
from orderdesk.utils.formatters import to_json_value
from orderdesk.utils.number_format import parse_amount, parse_int, to_decimal

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def _load_draft(data: Any) -> OrderDraft:
    """Draft from a request body, with configured tax and shipping defaults."""
    return draft_from_dict(
        data if data is not None else {},
        default_tax_rate=to_decimal(current_app.config.get('DEFAULT_TAX_RATE')),
        default_shipping=to_decimal(current_app.config.get('DEFAULT_SHIPPING_AMOUNT')),
    )


def _draft_response(db_session, draft: OrderDraft, **extra) -> Dict[str, Any]:
    """Draft plus its derived totals and points to earn."""
    settings = loyalty_service.get_loyalty_settings(db_session)
    totals = draft_totals(draft)
    body = {
        'status': 'success',
        'draft': draft_to_dict(draft),
        'totals': totals.to_dict(),
        'points_to_earn': calculate_points_to_earn(totals, settings) if draft.customer_id else 0,
    }
    body.update(extra)
    return to_json_value(body)


@orders_bp.route('/items', methods=['POST'])
def resolve_item() -> Tuple[Response, int]:
    """
    Price a catalog product as a line item.

    When the body carries a `draft`, the item is appended to it and the
    updated draft with its totals is returned as well.
    """
    db_session = get_session()
    payload = _json_body()

    item = resolve_line_item(db_session, payload)
    current_app.logger.info(
        f"[order_items] product_id={item.product_id} variant_id={item.variant_id} total={item.total_price}"
    )

    if 'draft' not in payload:
        return jsonify({'status': 'success', 'item': line_item_to_dict(item)}), 200

    draft = add_item(_load_draft(payload['draft']), item)
    return jsonify(_draft_response(db_session, draft, item=line_item_to_dict(item))), 200


@orders_bp.route('/preview', methods=['POST'])
def preview() -> Tuple[Response, int]:
    """Totals for a draft as the client holds it."""
    db_session = get_session()
    draft = _load_draft(_json_body().get('draft'))
    return jsonify(_draft_response(db_session, draft)), 200


@orders_bp.route('/points', methods=['POST'])
def select_points() -> Tuple[Response, int]:
    """
    Apply a points redemption to a draft.

    Body: {"draft": {...}, "points_to_redeem": 1000} or
    {"draft": {...}, "use_all_points": true} or {"draft": {...}, "clear": true}.
    The balance is read from the database, never from the client.
    """
    db_session = get_session()
    payload = _json_body()
    draft = _load_draft(payload.get('draft'))

    if payload.get('clear'):
        return jsonify(_draft_response(db_session, clear_points(draft), errors=[])), 200

    if draft.customer_id is None:
        raise ValidationError('Select a customer to redeem loyalty points')

    settings = loyalty_service.get_loyalty_settings(db_session)
    if not settings.enabled:
        raise ValidationError('Loyalty points system is disabled')

    available = loyalty_service.get_customer_points(db_session, draft.customer_id).available_points
    if payload.get('use_all_points'):
        draft = toggle_use_all_points(clear_points(draft), available, settings)
        requested = draft.points_to_redeem
    else:
        try:
            requested = parse_int(payload.get('points_to_redeem'), 'points_to_redeem')
        except ValueError as e:
            raise ValidationError(str(e))
        draft = apply_points(draft, requested, available, settings)

    # The request is validated as typed; the draft holds the clamped selection
    errors = loyalty_service.validate_redemption(requested, available, settings)
    return jsonify(_draft_response(db_session, draft, available_points=available, errors=errors)), 200


@orders_bp.route('', methods=['POST'])
def create() -> Tuple[Response, int]:
    """Persist a draft; totals are recomputed on the server."""
    from orderdesk.blueprints.metrics import record_order_created

    db_session = get_session()
    payload = _json_body()
    draft = _load_draft(payload.get('draft'))

    order = order_service.create_order(
        db_session,
        draft,
        email=payload.get('email'),
        notes=payload.get('notes'),
        idempotency_key=payload.get('idempotency_key') or request.headers.get('Idempotency-Key'),
        selected_attributes=_by_index(payload.get('selected_attributes')),
        item_notes=_by_index(payload.get('item_notes')),
    )
    record_order_created(Decimal(order.total_amount))

    return jsonify(to_json_value({'status': 'success', 'order': order_service.order_to_dict(order)})), 201


@orders_bp.route('/<int:order_id>', methods=['GET'])
def detail(order_id: int) -> Tuple[Response, int]:
    db_session = get_session()
    order = order_service.get_order(db_session, order_id)
    return jsonify(to_json_value({'status': 'success', 'order': order_service.order_to_dict(order)})), 200


@orders_bp.route('/<int:order_id>', methods=['PUT'])
def edit(order_id: int) -> Tuple[Response, int]:
    """
    Edit discount, shipping and points of an order, and optionally its status.

    Body: {"discount_amount": "5", "shipping_amount": "2", "points_to_redeem": 500,
           "status": "completed"}
    """
    db_session = get_session()
    payload = _json_body()

    try:
        discount_amount = _optional_amount(payload, 'discount_amount')
        shipping_amount = _optional_amount(payload, 'shipping_amount')
        points_to_redeem = (
            parse_int(payload['points_to_redeem'], 'points_to_redeem')
            if payload.get('points_to_redeem') not in (None, '') else None
        )
    except ValueError as e:
        raise ValidationError(str(e))

    # Reject a bad status before the amount edit commits
    status = payload.get('status')
    if status:
        order_service.parse_status(status)

    order = order_service.get_order(db_session, order_id)
    if discount_amount is not None or shipping_amount is not None or points_to_redeem is not None:
        order = order_service.update_order(
            db_session, order_id,
            discount_amount=discount_amount,
            shipping_amount=shipping_amount,
            points_to_redeem=points_to_redeem,
            dedupe_points_discount=current_app.config.get('DEDUPE_POINTS_DISCOUNT', True),
        )
    if status:
        order = order_service.update_order_status(db_session, order_id, status)

    return jsonify(to_json_value({'status': 'success', 'order': order_service.order_to_dict(order)})), 200


def _optional_amount(payload: Dict[str, Any], field: str):
    value = payload.get(field)
    if value in (None, ''):
        return None
    return parse_amount(value, field)


def _by_index(value: Any) -> Dict[int, Any]:
    """Per-item extras keyed by item position; JSON object keys arrive as strings."""
    if not value:
        return {}
    if isinstance(value, list):
        return {index: entry for index, entry in enumerate(value) if entry}
    if isinstance(value, dict):
        try:
            return {int(key): entry for key, entry in value.items()}
        except ValueError:
            raise ValidationError('Per-item values must be keyed by item index')
    raise ValidationError('Per-item values must be a list or an object')
