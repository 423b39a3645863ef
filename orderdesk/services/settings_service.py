"""Store settings service - typed access to the key/value `setting` table."""
import json
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from orderdesk.exceptions import ValidationError
from orderdesk.models import Setting
from orderdesk.utils.number_format import to_decimal

logger = logging.getLogger(__name__)

CACHE_MODULE = 'settings'
SETTING_TYPES = ('boolean', 'number', 'string', 'json')


def coerce_setting(value: Optional[str], setting_type: str) -> Any:
    """Convert a stored text value to its Python type."""
    if value is None:
        return None
    if setting_type == 'boolean':
        return str(value).strip().lower() == 'true'
    if setting_type == 'number':
        try:
            return to_decimal(value)
        except ValueError:
            logger.warning(f"Setting value {value!r} is not a number; using 0")
            return Decimal('0')
    if setting_type == 'json':
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"Setting value {value!r} is not valid JSON; using empty object")
            return {}
    return value


def serialize_setting(value: Any, setting_type: str) -> str:
    """Validate and convert a Python value to its stored text form."""
    if setting_type not in SETTING_TYPES:
        raise ValidationError(f"Invalid setting type: {setting_type}")
    if setting_type == 'boolean':
        if isinstance(value, str):
            return 'true' if value.strip().lower() == 'true' else 'false'
        return 'true' if value else 'false'
    if setting_type == 'number':
        try:
            return str(to_decimal(value))
        except ValueError:
            raise ValidationError(f"Invalid number value: {value!r}")
    if setting_type == 'json':
        try:
            return json.dumps(value)
        except (TypeError, ValueError):
            raise ValidationError("Invalid JSON value")
    return str(value)


def _load_settings(session: Session) -> Dict[str, Any]:
    return {
        setting.key: coerce_setting(setting.value, setting.type)
        for setting in session.query(Setting).all()
    }


def get_settings(session: Session) -> Dict[str, Any]:
    """All settings as a typed dict, cached when Redis is available."""
    if not has_app_context():
        return _load_settings(session)

    from orderdesk.services.cache_service import get_cache
    try:
        cache = get_cache()
    except RuntimeError:
        return _load_settings(session)

    ttl = current_app.config.get('CACHE_SETTINGS_TTL', 300)
    return cache.memoize(CACHE_MODULE, 'all', lambda: _load_settings(session), ttl)


def get_setting(session: Session, key: str, default: Any = None) -> Any:
    value = get_settings(session).get(key)
    return default if value is None else value


def save_settings(session: Session, values: Dict[str, Dict[str, Any]]) -> None:
    """
    Upsert settings.

    `values` maps key -> {'value': ..., 'type': ..., 'description': ...}.
    """
    try:
        for key, data in values.items():
            setting_type = data.get('type', 'string')
            stored = serialize_setting(data.get('value'), setting_type)

            setting = session.query(Setting).filter(Setting.key == key).first()
            if setting:
                setting.value = stored
                setting.type = setting_type
                if data.get('description'):
                    setting.description = data['description']
            else:
                session.add(Setting(
                    key=key,
                    value=stored,
                    type=setting_type,
                    description=data.get('description')
                ))
        session.commit()
    except Exception:
        session.rollback()
        raise

    invalidate_settings_cache()


def seed_defaults(session: Session, defaults: Dict[str, Dict[str, Any]], keys: Optional[Iterable[str]] = None) -> int:
    """Insert missing default settings; existing values are left alone."""
    existing = {s.key for s in session.query(Setting.key).all()}
    created = 0
    for key, data in defaults.items():
        if keys is not None and key not in keys:
            continue
        if key in existing:
            continue
        session.add(Setting(key=key, value=data['value'], type=data['type'], description=data.get('description')))
        created += 1
    session.commit()
    if created:
        invalidate_settings_cache()
    return created


def invalidate_settings_cache() -> None:
    """Gracefully attempt to invalidate the settings cache."""
    from orderdesk.services.cache_service import get_cache
    try:
        get_cache().invalidate_module(CACHE_MODULE)
    except RuntimeError:
        pass
