from __future__ import annotations

from ..extensions import db
from openstock.time_utils import to_utc_z, utcnow

SETTINGS_ROW_ID = 1


class Settings(db.Model):
    """
    Singleton configuration row (id=1).

    Read-only input to the projector and alert builder; not part of any
    ledger invariant.
    """
    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True, default=SETTINGS_ROW_ID)
    business_name = db.Column(db.String(160), nullable=False, default="OpenStock Inc.")
    currency = db.Column(db.String(3), nullable=False, default="EUR")
    default_margin = db.Column(db.Float, nullable=False, default=30)
    low_stock_alert = db.Column(db.Boolean, nullable=False, default=True)
    out_of_stock_alert = db.Column(db.Boolean, nullable=False, default=True)
    email_daily_report = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "business_name": self.business_name,
            "currency": self.currency,
            "default_margin": self.default_margin,
            "low_stock_alert": self.low_stock_alert,
            "out_of_stock_alert": self.out_of_stock_alert,
            "email_daily_report": self.email_daily_report,
            "updated_at": to_utc_z(self.updated_at),
        }
