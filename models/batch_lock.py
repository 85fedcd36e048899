from datetime import datetime
from models.db import db


class BatchLock(db.Model):
    __tablename__ = "batch_locks"

    name = db.Column(db.String(60), primary_key=True)
    owner = db.Column(db.String(120), nullable=False)

    acquired_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
