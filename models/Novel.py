from datetime import datetime
from . import db

NOVEL_STATUSES = ("ONGOING", "COMPLETED", "HIATUS")

novel_genres = db.Table('novel_genres',
    db.Column('novel_id', db.Integer, db.ForeignKey('novel.id'), primary_key=True),
    db.Column('genre_id', db.Integer, db.ForeignKey('genre.id'), primary_key=True)
)

class Novel(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    cover_image = db.Column(db.String(500), nullable=True)
    status = db.Column(db.Enum(*NOVEL_STATUSES, name="novel_status"), nullable=False, default="ONGOING")
    is_adult = db.Column(db.Boolean, default=False)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    view_count = db.Column(db.Integer, default=0)
    average_rating = db.Column(db.Float, default=0)
    total_ratings = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    genres = db.relationship('Genre', secondary=novel_genres, backref=db.backref('novels', lazy='dynamic'))
    chapters = db.relationship('Chapter', backref='novel', lazy='dynamic', cascade="all, delete-orphan")
    reviews = db.relationship('Review', backref='novel', lazy='dynamic', cascade="all, delete-orphan")
    bookmarks = db.relationship('Bookmark', backref='novel', lazy='dynamic', cascade="all, delete-orphan")

    def published_chapters(self):
        from .Chapter import Chapter
        return self.chapters.filter_by(status="PUBLISHED").order_by(Chapter.chapter_number)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "cover_image": self.cover_image,
            "status": self.status,
            "is_adult": self.is_adult,
            "author": self.author.to_public_dict() if self.author else None,
            "view_count": self.view_count or 0,
            "average_rating": self.average_rating or 0,
            "total_ratings": self.total_ratings or 0,
            "genres": [genre.to_dict() for genre in self.genres],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Novel {self.title}>"
