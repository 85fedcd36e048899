from datetime import datetime
from models.db import db


class Racket(db.Model):
    __tablename__ = "rackets"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_rackets_stock_non_negative"),
    )
