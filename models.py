from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()


class Record(db.Model):
    """One JSON document per key (invoices, expenses, templates, ...)."""
    __tablename__ = 'records'
    key = db.Column(db.String, primary_key=True)
    value = db.Column(db.JSON)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
