from flask_bcrypt import Bcrypt
from datetime import datetime
from . import db
bcrypt = Bcrypt()

ROLES = ("reader", "author", "admin")

class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(db.String(20), nullable=False, default="reader")
    wallet_coins = db.Column(db.Integer, nullable=False, default=0)
    premium_until = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    novels = db.relationship('Novel', backref='author', lazy=True)

    failed_attempts = db.Column(db.Integer, default=0)
    last_failed_attempt = db.Column(db.DateTime, nullable=True)
    locked_until = db.Column(db.DateTime, nullable=True)

    stripe_customer_id = db.Column(db.String(255), nullable=True)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode("utf-8")

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == "admin"

    def has_active_premium(self, now=None):
        now = now or datetime.utcnow()
        return self.premium_until is not None and self.premium_until > now

    def to_public_dict(self):
        return {"id": self.id, "username": self.username}

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "wallet_coins": self.wallet_coins or 0,
            "premium_until": self.premium_until.isoformat() if self.premium_until else None,
            "premium_active": self.has_active_premium(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.username}>"
