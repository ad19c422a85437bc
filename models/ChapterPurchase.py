from datetime import datetime
from . import db

class ChapterPurchase(db.Model):
    __table_args__ = (db.UniqueConstraint('user_id', 'chapter_id', name='uq_purchase_user_chapter'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    chapter_id = db.Column(db.Integer, db.ForeignKey('chapter.id'), nullable=False)
    coins_spent = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
