# Overview: Settings singleton: business name, currency, default margin, alert toggles.

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..models import Settings, SETTINGS_ROW_ID
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "business_name",
        "currency",
        "default_margin",
        "low_stock_alert",
        "out_of_stock_alert",
        "email_daily_report",
    }),
)


def get_settings() -> Settings:
    """Return the settings row, creating it from config defaults when missing."""
    settings = db.session.get(Settings, SETTINGS_ROW_ID)
    if settings is not None:
        return settings

    settings = Settings(
        id=SETTINGS_ROW_ID,
        currency=current_app.config.get("DEFAULT_CURRENCY", "EUR"),
        default_margin=current_app.config.get("DEFAULT_MARGIN_PERCENT", 30),
    )
    db.session.add(settings)
    db.session.commit()
    return settings


def update_settings(payload: dict) -> Settings:
    if payload and isinstance(payload.get("currency"), str):
        payload = {**payload, "currency": payload["currency"].strip().upper()}

    patch = validate_payload(model=Settings, payload=payload, policy=SETTINGS_POLICY, partial=True)

    if "currency" in patch and not CURRENCY_RE.match(patch["currency"]):
        raise ValidationError("currency must be a 3-letter ISO 4217 code")
    if patch.get("default_margin") is not None and patch["default_margin"] < 0:
        raise ValidationError("default_margin must be >= 0")

    settings = get_settings()
    for key, value in patch.items():
        setattr(settings, key, value)
    db.session.commit()
    return settings
