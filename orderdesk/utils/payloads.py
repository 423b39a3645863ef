"""
Order item payloads - addon snapshot, variant attributes and note.

Payloads are stored as JSON text with a `schema_version`. Rows written
before versioning (v1) hold either a bare addon list or an object, and some
were JSON-encoded twice; those are migrated explicitly here. Anything else
is rejected with `PayloadSchemaError` rather than guessed at.
"""
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

from orderdesk.exceptions import PayloadSchemaError
from orderdesk.services.pricing_service import AddonSelection
from orderdesk.utils.number_format import to_decimal

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 2
LEGACY_MAX_ENCODING_DEPTH = 2


@dataclass(frozen=True)
class ItemPayload:
    addons: Tuple[AddonSelection, ...] = ()
    selected_attributes: Dict[str, str] = field(default_factory=dict)
    note: Optional[str] = None
    migrated: bool = False


def dump_item_payload(
    addons: Iterable[AddonSelection] = (),
    selected_attributes: Optional[Dict[str, str]] = None,
    note: Optional[str] = None,
) -> str:
    return json.dumps({
        'schema_version': CURRENT_SCHEMA_VERSION,
        'addons': [
            {
                'addon_id': addon.addon_id,
                'title': addon.title,
                'price': str(addon.price),
                'quantity': addon.quantity,
            }
            for addon in addons
        ],
        'selected_attributes': dict(selected_attributes or {}),
        'note': note.strip() if note and note.strip() else None,
    })


def parse_item_payload(raw: Any) -> ItemPayload:
    """Read a stored payload, migrating v1 data."""
    if raw is None or raw == '':
        return ItemPayload()

    data = raw
    depth = 0
    while isinstance(data, str):
        if depth == LEGACY_MAX_ENCODING_DEPTH:
            raise PayloadSchemaError('Item payload is encoded more than twice')
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise PayloadSchemaError(f'Item payload is not valid JSON: {e.msg}')
        depth += 1

    if isinstance(data, dict) and 'schema_version' in data:
        if depth > 1:
            raise PayloadSchemaError('Versioned item payload must be encoded once')
        if data['schema_version'] != CURRENT_SCHEMA_VERSION:
            raise PayloadSchemaError(f"Unsupported item payload version: {data['schema_version']}")
        return ItemPayload(
            addons=_read_addons(data.get('addons') or [], legacy=False),
            selected_attributes=_read_attributes(data.get('selected_attributes')),
            note=data.get('note'),
        )

    payload = _migrate_v1(data)
    logger.info(f"Migrated legacy item payload (encoding depth {depth})")
    return payload


def _migrate_v1(data: Any) -> ItemPayload:
    if data is None:
        return ItemPayload(migrated=True)
    if isinstance(data, list):
        return ItemPayload(addons=_read_addons(data, legacy=True), migrated=True)
    if isinstance(data, dict):
        note = data.get('note')
        note = note.strip() if isinstance(note, str) and note.strip() else None
        return ItemPayload(
            addons=_read_addons(data.get('addons') or [], legacy=True),
            selected_attributes=_read_attributes(data.get('selectedAttributes')),
            note=note,
            migrated=True,
        )
    raise PayloadSchemaError(f'Unrecognized item payload of type {type(data).__name__}')


def _read_addons(entries: Any, legacy: bool) -> Tuple[AddonSelection, ...]:
    if not isinstance(entries, list):
        raise PayloadSchemaError('Item payload addons must be a list')

    addons = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise PayloadSchemaError(f'Addon #{index + 1} is not an object')
        if legacy:
            addon_id = entry.get('addonId', entry.get('id'))
            title = entry.get('addonTitle') or entry.get('title') or entry.get('name') or f'Addon {index + 1}'
        else:
            addon_id = entry.get('addon_id')
            title = entry.get('title')
        try:
            price = to_decimal(entry.get('price'), default=Decimal('0'))
            quantity = int(entry.get('quantity', 1))
        except (TypeError, ValueError):
            raise PayloadSchemaError(f'Addon #{index + 1} has an invalid price or quantity')
        addons.append(AddonSelection(addon_id=addon_id, title=title, price=price, quantity=quantity))
    return tuple(addons)


def _read_attributes(value: Any) -> Dict[str, str]:
    if not value:
        return {}
    if not isinstance(value, dict):
        raise PayloadSchemaError('Selected attributes must be an object')
    return {str(k): str(v) for k, v in value.items()}
