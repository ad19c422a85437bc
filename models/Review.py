from datetime import datetime
from . import db

class Review(db.Model):
    __table_args__ = (db.UniqueConstraint('user_id', 'novel_id', name='uq_review_user_novel'),)

    id = db.Column(db.Integer, primary_key=True)
    novel_id = db.Column(db.Integer, db.ForeignKey('novel.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    user = db.relationship('User')

    def to_dict(self):
        return {
            "id": self.id,
            "novel_id": self.novel_id,
            "rating": self.rating,
            "content": self.content,
            "user": self.user.to_public_dict() if self.user else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
