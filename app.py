import os
from flask import Flask, jsonify, send_from_directory
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException
from models import db, User, Genre
from models.Genre import DEFAULT_GENRES
from models.User import bcrypt
import stripe

env = os.environ.get('env')
port = 80
if env == "development":
    port = 5000
app = Flask(__name__)
app.config.from_pyfile('config.py')
app.logger.setLevel(app.config["LOG_LEVEL"])

db.init_app(app)
bcrypt.init_app(app)
jwt = JWTManager(app)

from api.auth import bp as auth_bp
from api.author import bp as author_bp
from api.novel import bp as novel_bp
from api.chapter import bp as chapter_bp
from api.bookshelf import bp as bookshelf_bp
from api.payments import bp as payments_bp

app.register_blueprint(auth_bp)
app.register_blueprint(author_bp)
app.register_blueprint(novel_bp)
app.register_blueprint(chapter_bp)
app.register_blueprint(bookshelf_bp)
app.register_blueprint(payments_bp)

def seed_defaults():
    """
    Create the default genres and, when ADMIN_PASSWORD is configured, the admin account.

    Existing rows are left untouched, so this is safe to run on every start-up.
    """
    existing = {genre.name for genre in Genre.query.all()}
    created = 0
    for name in DEFAULT_GENRES:
        if name not in existing:
            db.session.add(Genre(name=name))
            created += 1
    if created:
        app.logger.info(f"Seeded {created} genres.")
    admin_password = app.config.get("ADMIN_PASSWORD")
    if admin_password and not User.query.filter_by(role="admin").first():
        admin = User(username=app.config["ADMIN_USERNAME"], email=app.config["ADMIN_EMAIL"], role="admin")
        admin.set_password(admin_password)
        db.session.add(admin)
        app.logger.info("Default admin user created.")
    db.session.commit()

with app.app_context():
    stripe.api_key = app.config.get('STRIPE_SECRET_KEY')
    db.create_all()
    seed_defaults()

@app.errorhandler(HTTPException)
def handle_http_exception(e):
    """Render aborts and ``get_or_404`` misses as JSON errors."""
    return jsonify({"error": e.description}), e.code

@app.errorhandler(Exception)
def handle_unexpected_exception(e):
    """
    Log unexpected failures and answer with a generic 500.

    The database session is rolled back so the failed request leaves no
    partial writes behind.
    """
    db.session.rollback()
    app.logger.error(f"Unhandled error: {e}", exc_info=True)
    return jsonify({"error": "Internal server error"}), 500

@app.route('/uploads/<path:filename>')
def uploads(filename):
    return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

@app.route('/api/health')
def health():
    return jsonify({"status": "ok"})

if __name__ == '__main__':
    app.run(debug=env == "development", host='0.0.0.0', port=port)
