from datetime import datetime
from . import db

TRANSACTION_TYPES = ("COIN_PURCHASE", "CHAPTER_PURCHASE", "PREMIUM_SUBSCRIPTION")
TRANSACTION_STATUSES = ("PENDING", "COMPLETED", "FAILED")

class Transaction(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="COMPLETED")
    item_id = db.Column(db.String(64), nullable=True)
    item_type = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "amount": self.amount,
            "type": self.type,
            "status": self.status,
            "item_id": self.item_id,
            "item_type": self.item_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Transaction {self.type} {self.amount}>"
