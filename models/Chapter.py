from datetime import datetime
from . import db

CHAPTER_STATUSES = ("DRAFT", "PUBLISHED")

class Chapter(db.Model):
    __table_args__ = (db.UniqueConstraint('novel_id', 'chapter_number', name='uq_chapter_novel_number'),)

    id = db.Column(db.Integer, primary_key=True)
    novel_id = db.Column(db.Integer, db.ForeignKey('novel.id'), nullable=False)
    chapter_number = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.Enum(*CHAPTER_STATUSES, name="chapter_status"), nullable=False, default="DRAFT")
    is_premium = db.Column(db.Boolean, default=False)
    coins_cost = db.Column(db.Integer, default=0)
    word_count = db.Column(db.Integer, default=0)
    cover_image = db.Column(db.String(500), nullable=True)
    view_count = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    comments = db.relationship('Comment', backref='chapter', lazy='dynamic', cascade="all, delete-orphan")
    purchases = db.relationship('ChapterPurchase', backref='chapter', lazy='dynamic', cascade="all, delete-orphan")

    @property
    def is_published(self):
        return self.status == "PUBLISHED"

    def to_summary_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "chapter_number": self.chapter_number,
            "status": self.status,
            "is_premium": self.is_premium,
            "coins_cost": self.coins_cost or 0,
            "view_count": self.view_count or 0,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_dict(self, content=None):
        data = self.to_summary_dict()
        data.update({
            "novel_id": self.novel_id,
            "content": self.content if content is None else content,
            "word_count": self.word_count or 0,
            "cover_image": self.cover_image,
        })
        return data

    def __repr__(self):
        return f"<Chapter {self.novel_id}:{self.chapter_number}>"
