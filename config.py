import os
from datetime import timedelta

def _flag(name, default="false"):
    return os.environ.get(name, default).lower() in ("1", "true", "yes", "on")

SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")
JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)
JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get("JWT_ACCESS_TOKEN_HOURS", 24)))

SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///novelhub.db")
SQLALCHEMY_TRACK_MODIFICATIONS = False

BCRYPT_LOG_ROUNDS = int(os.environ.get("BCRYPT_LOG_ROUNDS", 12))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

REGISTRATION_DISABLED = _flag("REGISTRATION_DISABLED")
ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin")
ADMIN_EMAIL = os.environ.get("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD")

# "local" writes under UPLOAD_FOLDER, "s3" uploads to S3_IMAGE_BUCKET
IMAGE_STORAGE = os.environ.get("IMAGE_STORAGE", "local")
UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.join(os.path.dirname(os.path.abspath(__file__)), "uploads"))
MAX_IMAGE_SIZE = int(os.environ.get("MAX_IMAGE_SIZE", 5 * 1024 * 1024))
S3_REGION = os.environ.get("S3_REGION")
S3_ENDPOINT = os.environ.get("S3_ENDPOINT")
S3_IMAGE_ACCESS_KEY_ID = os.environ.get("S3_IMAGE_ACCESS_KEY_ID")
S3_IMAGE_SECRET_KEY = os.environ.get("S3_IMAGE_SECRET_KEY")
S3_IMAGE_BUCKET = os.environ.get("S3_IMAGE_BUCKET")
S3_PUBLIC_URL = os.environ.get("S3_PUBLIC_URL", "")

STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
STRIPE_PUBLISHABLE_KEY = os.environ.get("STRIPE_PUBLISHABLE_KEY")
STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")

MAILGUN_DOMAIN = os.environ.get("MAILGUN_DOMAIN")
MAILGUN_API_KEY = os.environ.get("MAILGUN_API_KEY")
MAILGUN_FROM_EMAIL = os.environ.get("MAILGUN_FROM_EMAIL", "no-reply@example.com")

PREVIEW_LENGTH = int(os.environ.get("PREVIEW_LENGTH", 1000))
DEFAULT_CHAPTER_COINS = int(os.environ.get("DEFAULT_CHAPTER_COINS", 5))
PREMIUM_DAYS = int(os.environ.get("PREMIUM_DAYS", 30))
PREMIUM_COINS_COST = int(os.environ.get("PREMIUM_COINS_COST", 300))
