from datetime import datetime
from . import db

class Comment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    chapter_id = db.Column(db.Integer, db.ForeignKey('chapter.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    parent_id = db.Column(db.Integer, db.ForeignKey('comment.id'), nullable=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    user = db.relationship('User')
    replies = db.relationship('Comment', backref=db.backref('parent', remote_side=[id]),
                              lazy='dynamic', cascade="all, delete-orphan")

    def to_dict(self, with_replies=False):
        data = {
            "id": self.id,
            "chapter_id": self.chapter_id,
            "parent_id": self.parent_id,
            "content": self.content,
            "user": self.user.to_public_dict() if self.user else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if with_replies:
            data["replies"] = [reply.to_dict() for reply in self.replies.order_by(Comment.created_at.asc(), Comment.id.asc())]
        return data
