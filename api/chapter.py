from flask import Blueprint, current_app, request, jsonify
from helpers import get_current_user, is_authenticated, is_comment_moderator, request_data, pagination_meta, increment_view_count
from models import Chapter, Comment, ChapterPurchase, Transaction, db
from premium import can_access_premium, premium_preview

bp = Blueprint('chapter', __name__)

def _can_view(chapter, user):
    """Published chapters are public; drafts are visible to the novel's author and admins only."""
    if chapter.is_published:
        return True
    return user is not None and (user.id == chapter.novel.author_id or user.is_admin)

def _neighbour_ids(chapter):
    published = Chapter.query.filter_by(novel_id=chapter.novel_id, status="PUBLISHED")
    previous = published.filter(Chapter.chapter_number < chapter.chapter_number)\
        .order_by(Chapter.chapter_number.desc()).first()
    following = published.filter(Chapter.chapter_number > chapter.chapter_number)\
        .order_by(Chapter.chapter_number.asc()).first()
    return (previous.id if previous else None, following.id if following else None)

@bp.route('/api/chapters/<int:chapter_id>', methods=["GET"])
def read_chapter(chapter_id):
    """
    Read a chapter.

    Draft chapters are only served to the novel's author. Each successful
    read counts a view. Premium chapters are reduced to a short preview
    unless the requester is a subscriber, has purchased the chapter or
    wrote the novel.

    Args:
        chapter_id (int): The chapter to read.

    Returns:
        flask.Response: The chapter, its novel, ``can_access_premium`` and
        the ids of the neighbouring published chapters; 403 for drafts the
        requester may not see; 404 if the chapter does not exist.
    """
    user = get_current_user()
    chapter = Chapter.query.get_or_404(chapter_id, description="Chapter not found")
    if not _can_view(chapter, user):
        return jsonify({"error": "This chapter is not yet published"}), 403

    increment_view_count(Chapter, chapter.id)
    db.session.commit()

    purchase = None
    if user is not None:
        purchase = ChapterPurchase.query.filter_by(user_id=user.id, chapter_id=chapter.id).first()
    can_access = can_access_premium(chapter, user, purchase)
    content = chapter.content if can_access else premium_preview(chapter.content)
    previous_id, next_id = _neighbour_ids(chapter)

    return jsonify({
        "chapter": chapter.to_dict(content=content),
        "novel": chapter.novel.to_dict(),
        "can_access_premium": can_access,
        "previous_chapter_id": previous_id,
        "next_chapter_id": next_id,
    })

@bp.route('/api/chapters/<int:chapter_id>/purchase', methods=["POST"])
@is_authenticated
def purchase_chapter(chapter_id):
    """
    Unlock a premium chapter with wallet coins.

    Returns:
        flask.Response: 201 with the purchase and the remaining balance;
        400 if the chapter is not premium or was already bought;
        402 if the wallet does not hold enough coins.
    """
    user = get_current_user()
    chapter = Chapter.query.get_or_404(chapter_id, description="Chapter not found")
    if not chapter.is_published:
        return jsonify({"error": "This chapter is not yet published"}), 403
    if not chapter.is_premium:
        return jsonify({"error": "This chapter is free to read"}), 400
    if chapter.novel.author_id == user.id:
        return jsonify({"error": "You cannot purchase your own chapter"}), 400
    if ChapterPurchase.query.filter_by(user_id=user.id, chapter_id=chapter.id).first():
        return jsonify({"error": "You have already purchased this chapter"}), 400

    cost = chapter.coins_cost or 0
    if (user.wallet_coins or 0) < cost:
        return jsonify({"error": "Not enough coins", "wallet_coins": user.wallet_coins or 0, "coins_cost": cost}), 402

    user.wallet_coins = (user.wallet_coins or 0) - cost
    purchase = ChapterPurchase(user_id=user.id, chapter_id=chapter.id, coins_spent=cost)
    transaction = Transaction(user_id=user.id, amount=cost, type="CHAPTER_PURCHASE",
                              item_id=str(chapter.id), item_type="chapter")
    db.session.add(purchase)
    db.session.add(transaction)
    db.session.commit()
    current_app.logger.info(f"User {user.id} purchased chapter {chapter.id} for {cost} coins.")
    return jsonify({
        "message": "Chapter unlocked",
        "chapter_id": chapter.id,
        "coins_spent": cost,
        "wallet_coins": user.wallet_coins,
        "transaction": transaction.to_dict(),
    }), 201

@bp.route('/api/chapters/<int:chapter_id>/comments', methods=["GET"])
def list_comments(chapter_id):
    """
    List a chapter's top-level comments, newest first, each with its replies oldest first.
    """
    user = get_current_user()
    chapter = Chapter.query.get_or_404(chapter_id, description="Chapter not found")
    if not _can_view(chapter, user):
        return jsonify({"error": "This chapter is not yet published"}), 403
    page = max(request.args.get('page', 1, type=int), 1)
    limit = min(max(request.args.get('limit', 20, type=int), 1), 100)
    pagination = Comment.query.filter_by(chapter_id=chapter.id, parent_id=None)\
        .order_by(Comment.created_at.desc(), Comment.id.desc())\
        .paginate(page=page, per_page=limit, error_out=False)
    return jsonify(dict(
        comments=[comment.to_dict(with_replies=True) for comment in pagination.items],
        **pagination_meta(pagination)
    ))

@bp.route('/api/chapters/<int:chapter_id>/comments', methods=["POST"])
@is_authenticated
def new_comment(chapter_id):
    """
    Adds a comment, or a reply when ``parent_id`` is given, to a chapter.

    Replies are one level deep: answering a reply attaches the new comment
    to the reply's top-level comment.

    Args:
        chapter_id (int): The chapter being commented on.

    Returns:
        flask.Response: 201 with the comment; 400 on empty content;
        404 if the parent comment does not exist on this chapter.
    """
    user = get_current_user()
    chapter = Chapter.query.get_or_404(chapter_id, description="Chapter not found")
    if not _can_view(chapter, user):
        return jsonify({"error": "This chapter is not yet published"}), 403

    data = request_data()
    content = (data.get("content") or "").strip()
    if not content:
        return jsonify({"error": "Comment content is required"}), 400

    parent_id = data.get("parent_id")
    if parent_id:
        parent = Comment.query.filter_by(id=parent_id, chapter_id=chapter.id).first()
        if not parent:
            return jsonify({"error": "Parent comment not found"}), 404
        parent_id = parent.parent_id or parent.id
    else:
        parent_id = None

    comment = Comment(chapter_id=chapter.id, user_id=user.id, parent_id=parent_id, content=content)
    db.session.add(comment)
    db.session.commit()
    return jsonify({"comment": comment.to_dict(), "message": "Comment added successfully"}), 201

@bp.route('/api/comments/<int:comment_id>', methods=["PUT"])
@is_authenticated
def edit_comment(comment_id):
    user = get_current_user()
    comment = Comment.query.get_or_404(comment_id, description="Comment not found")
    if comment.user_id != user.id:
        return jsonify({"error": "Not authorized to edit this comment"}), 403
    content = (request_data().get("content") or "").strip()
    if not content:
        return jsonify({"error": "Comment content is required"}), 400
    comment.content = content
    db.session.commit()
    return jsonify({"comment": comment.to_dict(), "message": "Comment updated"})

@bp.route('/api/comments/<int:comment_id>', methods=["DELETE"])
@is_comment_moderator
def delete_comment(comment_id):
    """
    Deletes a comment together with its direct replies.
    """
    comment = Comment.query.get_or_404(comment_id, description="Comment not found")
    replies_deleted = Comment.query.filter_by(parent_id=comment.id).delete(synchronize_session=False)
    db.session.delete(comment)
    db.session.commit()
    return jsonify({"message": "Comment deleted successfully", "replies_deleted": replies_deleted})
