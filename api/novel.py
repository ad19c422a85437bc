from datetime import datetime, timedelta
from flask import Blueprint, current_app, request, jsonify
from sqlalchemy import func, or_
from helpers import get_current_user, is_authenticated, request_data, pagination_meta, increment_view_count
from models import Novel, Genre, Review, db
from models.Novel import NOVEL_STATUSES

bp = Blueprint('novel', __name__)

SORT_COLUMNS = {
    "created_at": Novel.created_at,
    "updated_at": Novel.updated_at,
    "view_count": Novel.view_count,
    "average_rating": Novel.average_rating,
    "title": Novel.title,
}

TIMEFRAMES = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

def recompute_rating(novel_id):
    """
    Refresh ``average_rating`` and ``total_ratings`` on a novel from its reviews.

    Written as a single UPDATE that leaves ``updated_at`` untouched; the new
    values are visible on the novel once the session is committed.
    """
    average, count = db.session.query(func.avg(Review.rating), func.count(Review.id))\
        .filter(Review.novel_id == novel_id).one()
    Novel.query.filter_by(id=novel_id).update(
        {
            Novel.average_rating: float(average or 0),
            Novel.total_ratings: count,
            Novel.updated_at: Novel.updated_at,
        },
        synchronize_session=False
    )

def parse_rating(value):
    """Return ``value`` as an int from 1 to 5, or None when it is anything else."""
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if 1 <= value <= 5 else None

@bp.route('/api/novels', methods=["GET"])
def list_novels():
    """
    Browse, search and rank novels.

    Query parameters:
        genre (str): Genre name to filter by ("all" disables the filter).
        search (str): Case-insensitive match against title and description.
        status (str): ONGOING, COMPLETED or HIATUS.
        timeframe (str): "week" or "month", restricting to recently updated novels.
        sort (str): created_at, updated_at, view_count, average_rating or title. Default created_at.
        order (str): "asc" or "desc". Default "desc".
        page (int), limit (int): Pagination, limit capped at 100.

    Returns:
        flask.Response: The page of novels with their published chapter counts and pagination metadata.
    """
    genre = request.args.get('genre')
    search = request.args.get('search', '').strip()
    status = request.args.get('status')
    timeframe = request.args.get('timeframe')
    sort = request.args.get('sort', 'created_at')
    order = request.args.get('order', 'desc')
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 10, type=int), 1), 100)

    query = Novel.query
    if status:
        if status not in NOVEL_STATUSES:
            return jsonify({"error": f"Status must be one of {', '.join(NOVEL_STATUSES)}"}), 400
        query = query.filter(Novel.status == status)
    if genre and genre != 'all':
        query = query.filter(Novel.genres.any(func.lower(Genre.name) == genre.lower()))
    if search:
        term = f"%{search}%"
        query = query.filter(or_(Novel.title.ilike(term), Novel.description.ilike(term)))
    if timeframe in TIMEFRAMES:
        query = query.filter(Novel.updated_at >= datetime.utcnow() - TIMEFRAMES[timeframe])

    order_column = SORT_COLUMNS.get(sort, Novel.created_at)
    order_clause = order_column.asc() if order == 'asc' else order_column.desc()
    pagination = query.order_by(order_clause, Novel.id.desc()).paginate(page=page, per_page=limit, error_out=False)

    novels = []
    for novel in pagination.items:
        data = novel.to_dict()
        data["chapters_count"] = novel.published_chapters().count()
        novels.append(data)
    return jsonify(dict(novels=novels, **pagination_meta(pagination)))

@bp.route('/api/novels/<int:novel_id>', methods=["GET"])
def get_novel(novel_id):
    """
    Fetch a novel with its published chapter list and count the visit.
    """
    novel = Novel.query.get_or_404(novel_id, description="Novel not found")
    increment_view_count(Novel, novel.id)
    db.session.commit()

    data = novel.to_dict()
    data["chapters"] = [chapter.to_summary_dict() for chapter in novel.published_chapters()]
    data["bookmarks_count"] = novel.bookmarks.count()
    return jsonify({"novel": data})

@bp.route('/api/genres', methods=["GET"])
def list_genres():
    genres = Genre.query.order_by(Genre.name.asc()).all()
    return jsonify({"genres": [genre.to_dict() for genre in genres]})

@bp.route('/api/novels/<int:novel_id>/reviews', methods=["GET"])
def list_reviews(novel_id):
    novel = Novel.query.get_or_404(novel_id, description="Novel not found")
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 10, type=int), 1), 100)
    pagination = Review.query.filter_by(novel_id=novel.id)\
        .order_by(Review.created_at.desc(), Review.id.desc())\
        .paginate(page=page, per_page=limit, error_out=False)
    return jsonify(dict(
        reviews=[review.to_dict() for review in pagination.items],
        average_rating=novel.average_rating or 0,
        total_ratings=novel.total_ratings or 0,
        **pagination_meta(pagination)
    ))

@bp.route('/api/novels/<int:novel_id>/reviews', methods=["POST"])
@is_authenticated
def submit_review(novel_id):
    """
    Add or update the current user's review of a novel.

    A user holds at most one review per novel: submitting again replaces the
    rating and text of the existing review. The novel's average rating and
    rating count are recomputed afterwards.

    Args:
        novel_id (int): The reviewed novel.

    Returns:
        flask.Response: 201 with a new review, 200 with an updated one,
        400 if the rating is not an integer between 1 and 5.
    """
    user = get_current_user()
    novel = Novel.query.get_or_404(novel_id, description="Novel not found")
    data = request_data()
    rating = parse_rating(data.get("rating"))
    if rating is None:
        return jsonify({"error": "Rating must be between 1 and 5"}), 400
    content = (data.get("content") or "").strip()

    review = Review.query.filter_by(novel_id=novel.id, user_id=user.id).first()
    created = review is None
    if created:
        review = Review(novel_id=novel.id, user_id=user.id, rating=rating, content=content)
        db.session.add(review)
    else:
        review.rating = rating
        review.content = content
    db.session.flush()
    recompute_rating(novel.id)
    db.session.commit()

    message = "Review added successfully" if created else "Review updated successfully"
    return jsonify({
        "review": review.to_dict(),
        "average_rating": novel.average_rating,
        "total_ratings": novel.total_ratings,
        "message": message
    }), 201 if created else 200

@bp.route('/api/novels/<int:novel_id>/reviews/<int:review_id>', methods=["DELETE"])
@is_authenticated
def delete_review(novel_id, review_id):
    user = get_current_user()
    review = Review.query.filter_by(id=review_id, novel_id=novel_id).first_or_404(description="Review not found")
    if review.user_id != user.id and not user.is_admin:
        return jsonify({"error": "Not authorized to delete this review"}), 403
    db.session.delete(review)
    db.session.flush()
    recompute_rating(novel_id)
    db.session.commit()
    novel = Novel.query.get(novel_id)
    current_app.logger.info(f"Review {review_id} on novel {novel_id} deleted by user {user.id}.")
    return jsonify({"message": "Review deleted successfully", "average_rating": novel.average_rating,
                    "total_ratings": novel.total_ratings})
