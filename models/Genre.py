from . import db

DEFAULT_GENRES = [
    "Fantasy", "Science Fiction", "Mystery", "Romance", "Horror",
    "Thriller", "Adventure", "Historical Fiction", "Young Adult", "Action",
    "Comedy", "Drama", "Dystopian", "Poetry", "Slice of Life",
    "Supernatural", "Urban Fantasy", "Western", "Crime", "Suspense",
]

class Genre(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Genre {self.name}>"
