from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow


class SettingValue(db.Model):
    """
    Key/value settings row ("notification_settings", "payment_gateways").

    value_json holds the raw blob; typed access goes through settings_service.
    """
    __tablename__ = "settings_values"

    key = db.Column(db.String(255), primary_key=True)
    value_json = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)