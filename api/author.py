from flask import Blueprint, current_app, request, jsonify
from sqlalchemy import func
from helpers import (get_current_user, is_authenticated, is_novel_author_or_admin, read_uploaded_image,
                     delete_image, sanitize_html, count_words, parse_bool, request_data, pagination_meta,
                     ImageValidationError)
from models import Novel, Chapter, Genre, db
from models.Novel import NOVEL_STATUSES
from models.Chapter import CHAPTER_STATUSES
import json

bp = Blueprint('author', __name__)

def _parse_genre_ids(raw):
    """Turn the submitted ``genres`` field (a JSON list of ids) into a list of ints."""
    if isinstance(raw, list):
        items = raw
    else:
        try:
            items = json.loads(raw) if raw else []
        except (TypeError, ValueError):
            raise ValueError("Invalid genres format")
    if not isinstance(items, list):
        raise ValueError("Invalid genres format")
    try:
        return [int(item.get("id") if isinstance(item, dict) else item) for item in items]
    except (TypeError, ValueError):
        raise ValueError("Invalid genres format")

def _load_genres(genre_ids):
    if not genre_ids:
        raise ValueError("At least one genre is required")
    genres = Genre.query.filter(Genre.id.in_(set(genre_ids))).all()
    if len(genres) != len(set(genre_ids)):
        raise ValueError("Unknown genre")
    return genres

def _chapter_or_404(novel_id, chapter_id):
    return Chapter.query.filter_by(id=chapter_id, novel_id=novel_id).first_or_404(description="Chapter not found")

@bp.route('/api/author/novels', methods=["POST"])
@is_authenticated
def create_novel():
    """
    Creates a new novel from a multipart form submission.

    Expects ``title``, ``description``, ``status`` (ONGOING, COMPLETED or
    HIATUS), ``is_adult``, ``genres`` (a JSON list of genre ids, at least one)
    and an optional ``cover_image`` file. A reader who creates a novel becomes
    an author.

    Returns:
        Response: 201 with the created novel, or 400 when validation fails.
    """
    user = get_current_user()
    data = request_data()
    title = (data.get("title") or "").strip()
    description = (data.get("description") or "").strip()
    status = data.get("status") or "ONGOING"
    is_adult = parse_bool(data.get("is_adult", False))

    if not title:
        return jsonify({"error": "Title is required"}), 400
    if not description:
        return jsonify({"error": "Description is required"}), 400
    if status not in NOVEL_STATUSES:
        return jsonify({"error": f"Status must be one of {', '.join(NOVEL_STATUSES)}"}), 400
    try:
        genres = _load_genres(_parse_genre_ids(data.get("genres")))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    try:
        cover_url = read_uploaded_image("cover_image", "novels")
    except ImageValidationError as e:
        return jsonify({"error": str(e)}), 400

    novel = Novel(
        title=title,
        description=description,
        status=status,
        is_adult=is_adult,
        cover_image=cover_url,
        author_id=user.id,
        genres=genres
    )
    if user.role == "reader":
        user.role = "author"
    db.session.add(novel)
    db.session.commit()
    current_app.logger.info(f"User {user.id} created novel {novel.id}.")
    return jsonify({"novel": novel.to_dict()}), 201

@bp.route('/api/author/novels', methods=["GET"])
@is_authenticated
def list_author_novels():
    """
    Lists the current user's novels, newest first, with chapter, bookmark and rating counts.
    """
    user = get_current_user()
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 10, type=int), 100)
    status = request.args.get('status')

    query = Novel.query.filter_by(author_id=user.id)
    if status:
        query = query.filter_by(status=status)
    pagination = query.order_by(Novel.created_at.desc(), Novel.id.desc()).paginate(page=page, per_page=per_page, error_out=False)

    novels = []
    for novel in pagination.items:
        data = novel.to_dict()
        data["counts"] = {
            "chapters": novel.chapters.count(),
            "bookmarks": novel.bookmarks.count(),
            "ratings": novel.reviews.count(),
        }
        novels.append(data)
    return jsonify(dict(novels=novels, **pagination_meta(pagination)))

@bp.route('/api/author/novels/<int:novel_id>', methods=["GET"])
@is_novel_author_or_admin
def get_author_novel(novel_id):
    novel = Novel.query.get_or_404(novel_id)
    return jsonify({"novel": novel.to_dict()})

@bp.route('/api/author/novels/<int:novel_id>', methods=["PUT"])
@is_novel_author_or_admin
def edit_novel(novel_id):
    """
    Edit an existing novel.

    Only the fields present in the submission are changed. When ``genres``
    is sent it must still name at least one existing genre. A new
    ``cover_image`` replaces and deletes the previous one.

    Args:
        novel_id (int): The novel being edited.

    Returns:
        Response: The updated novel, or 400 on invalid input.
    """
    novel = Novel.query.get_or_404(novel_id)
    data = request_data()

    if "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            return jsonify({"error": "Title is required"}), 400
        novel.title = title
    if "description" in data:
        description = (data.get("description") or "").strip()
        if not description:
            return jsonify({"error": "Description is required"}), 400
        novel.description = description
    if "status" in data:
        if data.get("status") not in NOVEL_STATUSES:
            return jsonify({"error": f"Status must be one of {', '.join(NOVEL_STATUSES)}"}), 400
        novel.status = data.get("status")
    if "is_adult" in data:
        novel.is_adult = parse_bool(data.get("is_adult"))
    if "genres" in data:
        try:
            novel.genres = _load_genres(_parse_genre_ids(data.get("genres")))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

    try:
        cover_url = read_uploaded_image("cover_image", "novels")
    except ImageValidationError as e:
        return jsonify({"error": str(e)}), 400
    if cover_url:
        delete_image(novel.cover_image)
        novel.cover_image = cover_url

    db.session.commit()
    return jsonify({"novel": novel.to_dict()})

@bp.route('/api/author/novels/<int:novel_id>/status', methods=["PATCH"])
@is_novel_author_or_admin
def update_novel_status(novel_id):
    novel = Novel.query.get_or_404(novel_id)
    status = request_data().get("status")
    if status not in NOVEL_STATUSES:
        return jsonify({"error": f"Status must be one of {', '.join(NOVEL_STATUSES)}"}), 400
    novel.status = status
    db.session.commit()
    return jsonify({"novel": novel.to_dict()})

@bp.route('/api/author/novels/<int:novel_id>', methods=["DELETE"])
@is_novel_author_or_admin
def delete_novel(novel_id):
    """
    Deletes a novel together with its chapters, comments, reviews, bookmarks and images.
    """
    novel = Novel.query.get_or_404(novel_id)
    images = [novel.cover_image] + [chapter.cover_image for chapter in novel.chapters]
    db.session.delete(novel)
    db.session.commit()
    for image in images:
        delete_image(image)
    current_app.logger.info(f"Novel {novel_id} deleted.")
    return jsonify({"deleted": True})

@bp.route('/api/author/novels/<int:novel_id>/chapters', methods=["GET"])
@is_novel_author_or_admin
def list_chapters(novel_id):
    chapters = Chapter.query.filter_by(novel_id=novel_id).order_by(Chapter.chapter_number).all()
    return jsonify({"chapters": [chapter.to_dict() for chapter in chapters]})

def _apply_chapter_fields(chapter, data, creating=False):
    """
    Copy submitted chapter fields onto ``chapter``.

    Raises:
        ValueError: On a missing title, an unknown status, a negative cost or
        a chapter number already taken in the novel.
    """
    if creating or "title" in data:
        title = (data.get("title") or "").strip()
        if not title:
            raise ValueError("Title is required")
        chapter.title = title
    if creating or "content" in data:
        chapter.content = sanitize_html(data.get("content") or "")
        chapter.word_count = count_words(chapter.content)
    if creating or "status" in data:
        status = data.get("status") or "DRAFT"
        if status not in CHAPTER_STATUSES:
            raise ValueError('Status must be either "DRAFT" or "PUBLISHED"')
        chapter.status = status
    if "chapter_number" in data and data.get("chapter_number") not in (None, ""):
        try:
            number = int(data.get("chapter_number"))
        except (TypeError, ValueError):
            raise ValueError("Invalid chapter number")
        if number < 1:
            raise ValueError("Chapter number must be positive")
        clash = Chapter.query.filter_by(novel_id=chapter.novel_id, chapter_number=number)
        if chapter.id is not None:
            clash = clash.filter(Chapter.id != chapter.id)
        if clash.first():
            raise ValueError(f"Chapter {number} already exists")
        chapter.chapter_number = number
    elif creating:
        last = db.session.query(func.max(Chapter.chapter_number)).filter_by(novel_id=chapter.novel_id).scalar()
        chapter.chapter_number = (last or 0) + 1
    if creating or "is_premium" in data:
        chapter.is_premium = parse_bool(data.get("is_premium", False))
    if creating or "coins_cost" in data or "is_premium" in data:
        raw_cost = data.get("coins_cost")
        if raw_cost in (None, ""):
            cost = chapter.coins_cost or 0
        else:
            try:
                cost = int(raw_cost)
            except (TypeError, ValueError):
                raise ValueError("Invalid coins cost")
        if cost < 0:
            raise ValueError("Coins cost cannot be negative")
        if chapter.is_premium and cost == 0:
            cost = current_app.config.get("DEFAULT_CHAPTER_COINS")
        chapter.coins_cost = cost

@bp.route('/api/author/novels/<int:novel_id>/chapters', methods=["POST"])
@is_novel_author_or_admin
def create_chapter(novel_id):
    """
    Creates a chapter in a novel.

    Accepts ``title``, ``content`` (HTML, sanitized before storage),
    ``chapter_number`` (defaults to the next free ordinal), ``status``
    (DRAFT or PUBLISHED), ``is_premium``, ``coins_cost`` and an optional
    ``cover_image`` file.

    Args:
        novel_id (int): The novel the chapter is added to.

    Returns:
        Response: 201 with the chapter, or 400 when validation fails.
    """
    chapter = Chapter(novel_id=novel_id)
    try:
        _apply_chapter_fields(chapter, request_data(), creating=True)
        chapter.cover_image = read_uploaded_image("cover_image", "chapters")
    except (ValueError, ImageValidationError) as e:
        return jsonify({"error": str(e)}), 400
    db.session.add(chapter)
    db.session.commit()
    return jsonify({"chapter": chapter.to_dict()}), 201

@bp.route('/api/author/novels/<int:novel_id>/chapters/<int:chapter_id>', methods=["GET"])
@is_novel_author_or_admin
def get_chapter(novel_id, chapter_id):
    chapter = _chapter_or_404(novel_id, chapter_id)
    return jsonify({"chapter": chapter.to_dict()})

@bp.route('/api/author/novels/<int:novel_id>/chapters/<int:chapter_id>', methods=["PUT"])
@is_novel_author_or_admin
def edit_chapter(novel_id, chapter_id):
    """
    Updates a chapter. Fields that are not submitted keep their current values.
    """
    chapter = _chapter_or_404(novel_id, chapter_id)
    try:
        _apply_chapter_fields(chapter, request_data())
        cover_url = read_uploaded_image("cover_image", "chapters")
    except (ValueError, ImageValidationError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    if cover_url:
        delete_image(chapter.cover_image)
        chapter.cover_image = cover_url
    db.session.commit()
    return jsonify({"chapter": chapter.to_dict()})

@bp.route('/api/author/novels/<int:novel_id>/chapters/<int:chapter_id>/status', methods=["PATCH"])
@is_novel_author_or_admin
def update_chapter_status(novel_id, chapter_id):
    chapter = _chapter_or_404(novel_id, chapter_id)
    status = request_data().get("status")
    if status not in CHAPTER_STATUSES:
        return jsonify({"error": 'Invalid status provided. Status must be either "DRAFT" or "PUBLISHED"'}), 400
    chapter.status = status
    db.session.commit()
    return jsonify({"chapter": chapter.to_dict()})

@bp.route('/api/author/novels/<int:novel_id>/chapters/<int:chapter_id>', methods=["DELETE"])
@is_novel_author_or_admin
def delete_chapter(novel_id, chapter_id):
    chapter = _chapter_or_404(novel_id, chapter_id)
    image = chapter.cover_image
    db.session.delete(chapter)
    db.session.commit()
    delete_image(image)
    return jsonify({"success": True})
