from flask import Blueprint, request, jsonify
from helpers import get_current_user, is_authenticated, request_data, pagination_meta
from models import Bookmark, Novel, db

bp = Blueprint('bookshelf', __name__)

@bp.route('/api/bookshelf', methods=["GET"])
@is_authenticated
def list_bookshelf():
    """
    List the novels on the current user's bookshelf, most recently added first.
    """
    user = get_current_user()
    page = max(request.args.get('page', 1, type=int), 1)
    per_page = min(max(request.args.get('per_page', 10, type=int), 1), 100)
    pagination = Novel.query.join(Bookmark, Bookmark.novel_id == Novel.id)\
        .filter(Bookmark.user_id == user.id)\
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())\
        .paginate(page=page, per_page=per_page, error_out=False)
    return jsonify(dict(novels=[novel.to_dict() for novel in pagination.items], **pagination_meta(pagination)))

@bp.route('/api/bookshelf/<int:novel_id>', methods=["GET"])
@is_authenticated
def in_bookshelf(novel_id):
    user = get_current_user()
    bookmark = Bookmark.query.filter_by(user_id=user.id, novel_id=novel_id).first()
    return jsonify({"in_bookshelf": bookmark is not None})

@bp.route('/api/bookshelf', methods=["POST"])
@is_authenticated
def add_to_bookshelf():
    """
    Add a novel to the current user's bookshelf.

    Adding a novel that is already on the shelf is a no-op.

    Returns:
        flask.Response: 201 when the bookmark is created, 200 if it already
        existed, 400 without ``novel_id``, 404 for an unknown novel.
    """
    user = get_current_user()
    try:
        novel_id = int(request_data().get("novel_id"))
    except (TypeError, ValueError):
        return jsonify({"error": "Novel ID is required"}), 400
    novel = Novel.query.get_or_404(novel_id, description="Novel not found")
    if Bookmark.query.filter_by(user_id=user.id, novel_id=novel.id).first():
        return jsonify({"success": True, "message": "Novel already in bookshelf"})
    db.session.add(Bookmark(user_id=user.id, novel_id=novel.id))
    db.session.commit()
    return jsonify({"success": True, "message": "Novel added to bookshelf"}), 201

@bp.route('/api/bookshelf/<int:novel_id>', methods=["DELETE"])
@is_authenticated
def remove_from_bookshelf(novel_id):
    user = get_current_user()
    Bookmark.query.filter_by(user_id=user.id, novel_id=novel_id).delete()
    db.session.commit()
    return jsonify({"success": True, "message": "Novel removed from bookshelf"})
