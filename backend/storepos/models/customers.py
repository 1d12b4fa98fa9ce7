from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Member(db.Model):
    """
    Registered customer of a store.

    A sale without a member is a walk-in sale. Stores may also keep one shared
    "general customer" member (is_general=True) for walk-ins; it can never
    carry an outstanding balance.
    """
    __tablename__ = "members"
    __table_args__ = (
        db.UniqueConstraint("store_id", "code", name="uq_members_store_code"),
        db.Index("ix_members_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    is_general = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("members", lazy=True))

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "code": self.code}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "code": self.code,
            "phone": self.phone,
            "is_general": self.is_general,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
