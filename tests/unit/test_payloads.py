"""
Unit tests for stored order item payloads.
"""
import json
import pytest
from decimal import Decimal

from orderdesk.exceptions import PayloadSchemaError
from orderdesk.services.pricing_service import AddonSelection
from orderdesk.utils.payloads import CURRENT_SCHEMA_VERSION, dump_item_payload, parse_item_payload


class TestCurrentPayload:

    def test_dump_and_parse(self):
        raw = dump_item_payload(
            [AddonSelection(addon_id=3, title='Card', price=Decimal('2.50'), quantity=2)],
            selected_attributes={'Size': 'L'},
            note='  gift wrap  ',
        )

        assert json.loads(raw)['schema_version'] == CURRENT_SCHEMA_VERSION

        payload = parse_item_payload(raw)
        assert payload.migrated is False
        assert payload.addons == (AddonSelection(addon_id=3, title='Card', price=Decimal('2.50'), quantity=2),)
        assert payload.selected_attributes == {'Size': 'L'}
        assert payload.note == 'gift wrap'

    @pytest.mark.parametrize('raw', [None, ''])
    def test_empty(self, raw):
        payload = parse_item_payload(raw)
        assert payload.addons == ()
        assert payload.selected_attributes == {}

    def test_unsupported_version(self):
        with pytest.raises(PayloadSchemaError):
            parse_item_payload(json.dumps({'schema_version': 3, 'addons': []}))

    def test_versioned_payload_encoded_twice(self):
        raw = json.dumps(dump_item_payload())
        with pytest.raises(PayloadSchemaError):
            parse_item_payload(raw)


class TestLegacyPayload:

    def test_bare_addon_list(self):
        raw = json.dumps([{'addonId': 4, 'addonTitle': 'Ribbon', 'price': 1.5, 'quantity': 1}])
        payload = parse_item_payload(raw)

        assert payload.migrated is True
        assert payload.addons[0].addon_id == 4
        assert payload.addons[0].title == 'Ribbon'
        assert payload.addons[0].price == Decimal('1.5')

    def test_object_double_encoded(self):
        legacy = {
            'addons': [{'id': 9, 'name': 'Card', 'price': '2'}],
            'selectedAttributes': {'Color': 'Red'},
            'note': 'Leave at door',
        }
        payload = parse_item_payload(json.dumps(json.dumps(legacy)))

        assert payload.migrated is True
        assert payload.addons[0].title == 'Card'
        assert payload.addons[0].quantity == 1
        assert payload.selected_attributes == {'Color': 'Red'}
        assert payload.note == 'Leave at door'

    def test_missing_title_gets_placeholder(self):
        payload = parse_item_payload(json.dumps([{'addonId': 1, 'price': 1}, {'addonId': 2, 'price': 1}]))
        assert [a.title for a in payload.addons] == ['Addon 1', 'Addon 2']

    def test_triple_encoding_rejected(self):
        raw = json.dumps(json.dumps(json.dumps([])))
        with pytest.raises(PayloadSchemaError):
            parse_item_payload(raw)

    @pytest.mark.parametrize('raw', [
        'not json',
        json.dumps(42),
        json.dumps(['card']),
        json.dumps([{'addonId': 1, 'price': 'free'}]),
        json.dumps({'addons': {'id': 1}}),
        json.dumps({'selectedAttributes': ['Red']}),
    ])
    def test_malformed_rejected(self, raw):
        with pytest.raises(PayloadSchemaError):
            parse_item_payload(raw)
