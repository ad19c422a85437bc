import io
import json
import os

from models import db, User, Novel, Chapter, Comment, Review, Bookmark

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _novel_form(genre_ids, **overrides):
    form = {
        "title": "Winter Crown",
        "description": "A throne of ice.",
        "status": "ONGOING",
        "is_adult": "false",
        "genres": json.dumps(genre_ids),
    }
    form.update(overrides)
    return form


def test_create_novel_promotes_reader_and_stores_cover(app, make_user, login, genre_ids):
    make_user("writer")
    client = login("writer")
    form = _novel_form(genre_ids, cover_image=(io.BytesIO(PNG_BYTES), "cover.png"))
    resp = client.post("/api/author/novels", data=form, content_type="multipart/form-data")
    assert resp.status_code == 201
    novel = resp.get_json()["novel"]
    assert novel["title"] == "Winter Crown"
    assert sorted(g["id"] for g in novel["genres"]) == sorted(genre_ids)
    assert novel["cover_image"].startswith("/uploads/novels/")
    assert novel["cover_image"].endswith(".png")

    stored = os.path.join(app.config["UPLOAD_FOLDER"], novel["cover_image"][len("/uploads/"):])
    assert os.path.exists(stored)
    assert client.get(novel["cover_image"]).status_code == 200

    with app.app_context():
        assert User.query.filter_by(username="writer").first().role == "author"


def test_create_novel_requires_a_genre(make_user, login, genre_ids):
    make_user("writer", role="author")
    client = login("writer")
    resp = client.post("/api/author/novels", data=_novel_form([]))
    assert resp.status_code == 400
    assert "genre" in resp.get_json()["error"].lower()
    assert client.post("/api/author/novels", data=_novel_form([9999])).status_code == 400
    assert client.post("/api/author/novels", data=_novel_form(genre_ids, title="  ")).status_code == 400
    assert client.post("/api/author/novels", data=_novel_form(genre_ids, status="DONE")).status_code == 400


def test_create_novel_rejects_non_image_cover(make_user, login, genre_ids):
    make_user("writer", role="author")
    form = _novel_form(genre_ids, cover_image=(io.BytesIO(b"plain text, not an image"), "cover.png"))
    resp = login("writer").post("/api/author/novels", data=form, content_type="multipart/form-data")
    assert resp.status_code == 400


def test_list_author_novels_only_shows_own(make_user, make_novel, login):
    alice = make_user("alice", role="author")
    bob = make_user("bob", role="author")
    make_novel(alice, title="Alice One")
    make_novel(bob, title="Bob One")
    body = login("alice").get("/api/author/novels").get_json()
    assert [n["title"] for n in body["novels"]] == ["Alice One"]
    assert body["novels"][0]["counts"] == {"chapters": 0, "bookmarks": 0, "ratings": 0}


def test_edit_novel_ownership(make_user, make_novel, login, genre_ids):
    owner = make_user("owner", role="author")
    make_user("other", role="author")
    make_user("root", role="admin")
    novel_id = make_novel(owner)

    assert login("other").put(f"/api/author/novels/{novel_id}", data={"title": "Stolen"}).status_code == 403
    assert login("owner").put("/api/author/novels/9999", data={"title": "Ghost"}).status_code == 404

    resp = login("owner").put(f"/api/author/novels/{novel_id}", data={"title": "Renamed", "genres": "[]"})
    assert resp.status_code == 400

    resp = login("owner").put(f"/api/author/novels/{novel_id}",
                              data={"title": "Renamed", "genres": json.dumps(genre_ids[:1])})
    assert resp.status_code == 200
    novel = resp.get_json()["novel"]
    assert novel["title"] == "Renamed"
    assert [g["id"] for g in novel["genres"]] == genre_ids[:1]

    resp = login("root").patch(f"/api/author/novels/{novel_id}/status", json={"status": "HIATUS"})
    assert resp.status_code == 200
    assert resp.get_json()["novel"]["status"] == "HIATUS"


def test_delete_novel_cascades(app, make_user, make_novel, make_chapter, login):
    owner = make_user("owner", role="author")
    reader = make_user("reader")
    novel_id = make_novel(owner)
    chapter_id = make_chapter(novel_id)
    with app.app_context():
        db.session.add(Comment(chapter_id=chapter_id, user_id=reader, content="Nice"))
        db.session.add(Review(novel_id=novel_id, user_id=reader, rating=4, content="Good"))
        db.session.add(Bookmark(novel_id=novel_id, user_id=reader))
        db.session.commit()

    assert login("reader").delete(f"/api/author/novels/{novel_id}").status_code == 403
    assert login("owner").delete(f"/api/author/novels/{novel_id}").status_code == 200

    with app.app_context():
        assert Novel.query.get(novel_id) is None
        assert Chapter.query.count() == 0
        assert Comment.query.count() == 0
        assert Review.query.count() == 0
        assert Bookmark.query.count() == 0


def test_create_chapter_sanitizes_and_numbers(make_user, make_novel, login):
    owner = make_user("owner", role="author")
    novel_id = make_novel(owner)
    client = login("owner")

    resp = client.post(f"/api/author/novels/{novel_id}/chapters", data={
        "title": "Arrival",
        "content": '<p onclick="steal()">Hello <b>world</b></p><script>alert(1)</script>',
        "status": "PUBLISHED",
    })
    assert resp.status_code == 201
    chapter = resp.get_json()["chapter"]
    assert chapter["chapter_number"] == 1
    assert chapter["content"] == "<p>Hello <b>world</b></p>"
    assert chapter["word_count"] == 2
    assert chapter["is_premium"] is False

    resp = client.post(f"/api/author/novels/{novel_id}/chapters", data={"title": "Second", "content": "x"})
    assert resp.status_code == 201
    assert resp.get_json()["chapter"]["chapter_number"] == 2
    assert resp.get_json()["chapter"]["status"] == "DRAFT"


def test_duplicate_chapter_number_is_rejected(make_user, make_novel, make_chapter, login):
    owner = make_user("owner", role="author")
    novel_id = make_novel(owner)
    make_chapter(novel_id, number=1)
    second = make_chapter(novel_id, number=2)
    client = login("owner")

    resp = client.post(f"/api/author/novels/{novel_id}/chapters",
                       data={"title": "Again", "content": "x", "chapter_number": "1"})
    assert resp.status_code == 400

    resp = client.put(f"/api/author/novels/{novel_id}/chapters/{second}", data={"chapter_number": "1"})
    assert resp.status_code == 400

    resp = client.put(f"/api/author/novels/{novel_id}/chapters/{second}", data={"chapter_number": "2", "title": "Kept"})
    assert resp.status_code == 200
    assert resp.get_json()["chapter"]["title"] == "Kept"


def test_premium_chapter_gets_default_cost(make_user, make_novel, login):
    owner = make_user("owner", role="author")
    novel_id = make_novel(owner)
    resp = login("owner").post(f"/api/author/novels/{novel_id}/chapters",
                               data={"title": "Paid", "content": "x", "is_premium": "true"})
    assert resp.status_code == 201
    assert resp.get_json()["chapter"]["coins_cost"] == 5

    resp = login("owner").post(f"/api/author/novels/{novel_id}/chapters",
                               data={"title": "Bad", "content": "x", "coins_cost": "-1"})
    assert resp.status_code == 400


def test_chapter_status_toggle_and_delete(app, make_user, make_novel, make_chapter, login):
    owner = make_user("owner", role="author")
    make_user("other", role="author")
    novel_id = make_novel(owner)
    chapter_id = make_chapter(novel_id, status="DRAFT")
    url = f"/api/author/novels/{novel_id}/chapters/{chapter_id}"

    assert login("other").patch(f"{url}/status", json={"status": "PUBLISHED"}).status_code == 403
    assert login("owner").patch(f"{url}/status", json={"status": "LIVE"}).status_code == 400
    resp = login("owner").patch(f"{url}/status", json={"status": "PUBLISHED"})
    assert resp.status_code == 200
    assert resp.get_json()["chapter"]["status"] == "PUBLISHED"

    assert login("owner").get(f"/api/author/novels/{novel_id}/chapters/9999").status_code == 404
    assert login("owner").delete(url).status_code == 200
    with app.app_context():
        assert Chapter.query.get(chapter_id) is None


def test_author_chapter_list_includes_drafts(make_user, make_novel, make_chapter, login):
    owner = make_user("owner", role="author")
    novel_id = make_novel(owner)
    make_chapter(novel_id, number=2, status="DRAFT")
    make_chapter(novel_id, number=1)
    chapters = login("owner").get(f"/api/author/novels/{novel_id}/chapters").get_json()["chapters"]
    assert [c["chapter_number"] for c in chapters] == [1, 2]
    assert [c["status"] for c in chapters] == ["PUBLISHED", "DRAFT"]
