from datetime import datetime
from . import db

class Bookmark(db.Model):
    __table_args__ = (db.UniqueConstraint('user_id', 'novel_id', name='uq_bookmark_user_novel'),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    novel_id = db.Column(db.Integer, db.ForeignKey('novel.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Bookmark User:{self.user_id} Novel:{self.novel_id}>"
