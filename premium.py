from datetime import datetime
from flask import current_app

PREVIEW_LENGTH = 1000


def can_access_premium(chapter, user, purchase=None, now=None):
    """
    Decide whether a requester may read the full text of a chapter.

    Access to a premium chapter is granted to subscribers whose premium
    period has not yet expired, to readers holding a purchase record for the
    chapter and to the novel's author. Anonymous readers are always denied.
    Non-premium chapters are open to everyone.

    Args:
        chapter (Chapter): The chapter being read, with its novel loaded.
        user (User or None): The requester, None when unauthenticated.
        purchase (ChapterPurchase or None): The requester's purchase of this chapter, if any.
        now (datetime, optional): Reference time for the subscription check. Defaults to utcnow.

    Returns:
        bool: True if the full content may be returned.
    """
    if not chapter.is_premium:
        return True
    if user is None:
        return False
    now = now or datetime.utcnow()
    if user.premium_until is not None and user.premium_until > now:
        return True
    if purchase is not None:
        return True
    if user.id == chapter.novel.author_id:
        return True
    return False


def premium_preview(content, length=None):
    """Cut chapter content down to the free preview, always ending with an ellipsis."""
    if length is None:
        length = current_app.config.get("PREVIEW_LENGTH", PREVIEW_LENGTH)
    return (content or "")[:length] + "..."
