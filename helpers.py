import logging
import os
import re
import uuid
import mimetypes
from functools import wraps
from datetime import timedelta
from flask import request, jsonify, current_app
from models import User, Novel, Comment
from flask_jwt_extended import decode_token, create_access_token
import bleach
import requests
import boto3
from config import S3_REGION, S3_ENDPOINT, S3_IMAGE_ACCESS_KEY_ID, S3_IMAGE_SECRET_KEY

s3_client = boto3.client('s3',
    region_name=S3_REGION,
    endpoint_url=S3_ENDPOINT,
    aws_access_key_id=S3_IMAGE_ACCESS_KEY_ID,
    aws_secret_access_key=S3_IMAGE_SECRET_KEY)

ALLOWED_IMAGE_TYPES = ('image/jpeg', 'image/png', 'image/gif', 'image/webp')

ALLOWED_CONTENT_TAGS = [
    'p', 'br', 'em', 'strong', 'b', 'i', 'u', 's',
    'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'blockquote', 'ol', 'ul', 'li',
    'hr', 'span', 'div', 'a', 'img'
]

ALLOWED_CONTENT_ATTRIBUTES = {
    '*': ['class'],
    'a': ['href', 'title'],
    'img': ['src', 'alt'],
}


class ImageValidationError(ValueError):
    pass


def send_password_reset_email(email, token, username):
    """
    Send a password reset email to the specified user.

    The email is sent through the Mailgun HTTP API and carries the reset token
    the client posts back to ``/api/auth/reset-password/<token>``.

    Args:
        email (str): The recipient's email address.
        token (str): The token used to authenticate the password reset request.
        username (str): The username of the user requesting the password reset.

    Returns:
        bool: True if Mailgun accepted the message, False otherwise.
    """
    mailgun_domain = current_app.config.get("MAILGUN_DOMAIN")
    mailgun_api_key = current_app.config.get("MAILGUN_API_KEY")
    from_email = current_app.config.get("MAILGUN_FROM_EMAIL")
    if not mailgun_domain or not mailgun_api_key:
        current_app.logger.warning("Mailgun is not configured, password reset email not sent.")
        return False

    html_content = f"""
    <html>
      <body>
        <p>Hello {username},</p>
        <p>You recently requested to reset your password. Use the code below to choose a new one:</p>
        <p><code>{token}</code></p>
        <p>If you did not request this, please ignore this email.</p>
      </body>
    </html>
    """

    data = {
        "from": from_email,
        "to": email,
        "subject": "Password Reset Request",
        "html": html_content,
    }

    try:
        response = requests.post(
            f"https://api.mailgun.net/v3/{mailgun_domain}/messages",
            auth=("api", mailgun_api_key),
            data=data,
            timeout=10
        )
    except requests.RequestException as e:
        current_app.logger.error(f"Mailgun request failed: {e}")
        return False

    if response.status_code == 200:
        current_app.logger.info("Password reset email sent successfully.")
        return True
    current_app.logger.error(f"Mailgun error: {response.text}")
    return False

def sniff_image_type(data):
    """
    Detect the MIME type of an image from its leading bytes.

    Args:
        data (bytes): The raw file content.

    Returns:
        str or None: One of the supported image MIME types, or None if the
        signature is not recognised.
    """
    if data[:3] == b'\xff\xd8\xff':
        return 'image/jpeg'
    if data[:8] == b'\x89PNG\r\n\x1a\n':
        return 'image/png'
    if data[:6] in (b'GIF87a', b'GIF89a'):
        return 'image/gif'
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return 'image/webp'
    return None

def save_image(data, original_name, folder):
    """
    Validate and store an uploaded image, returning the URL it is served from.

    Images are written under ``UPLOAD_FOLDER/<folder>`` and served from
    ``/uploads/<folder>/<name>``, or uploaded to ``S3_IMAGE_BUCKET`` when
    ``IMAGE_STORAGE`` is ``"s3"``.

    Args:
        data (bytes): The binary image data.
        original_name (str): The client-side filename, used for the extension fallback.
        folder (str): The sub-folder the image belongs to (``novels`` or ``chapters``).

    Returns:
        str: The URL of the stored image.

    Raises:
        ImageValidationError: If the data is not a supported image or is too large.
    """
    mime_type = sniff_image_type(data)
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise ImageValidationError("Invalid image type. Only JPEG, PNG, GIF, and WebP are allowed.")
    max_size = current_app.config.get("MAX_IMAGE_SIZE")
    if len(data) > max_size:
        raise ImageValidationError(f"Image size exceeds the {max_size // (1024 * 1024)}MB limit.")

    extension = mimetypes.guess_extension(mime_type) or os.path.splitext(original_name or "")[1]
    filename = f"{uuid.uuid4().hex}{extension}"
    key = f"{folder}/{filename}"

    if current_app.config.get("IMAGE_STORAGE") == "s3":
        s3_client.put_object(
            Bucket=current_app.config.get("S3_IMAGE_BUCKET"),
            Key=key,
            Body=data,
            ContentType=mime_type
        )
        return f"{current_app.config.get('S3_PUBLIC_URL').rstrip('/')}/{key}"

    directory = os.path.join(current_app.config.get("UPLOAD_FOLDER"), folder)
    os.makedirs(directory, exist_ok=True)
    with open(os.path.join(directory, filename), "wb") as f:
        f.write(data)
    return f"/uploads/{key}"

def delete_image(url):
    """
    Remove a previously stored image. Unknown or missing images are ignored.

    Args:
        url (str): The URL returned by ``save_image``.
    """
    if not url:
        return
    if current_app.config.get("IMAGE_STORAGE") == "s3":
        prefix = current_app.config.get("S3_PUBLIC_URL").rstrip('/') + "/"
        if url.startswith(prefix):
            s3_client.delete_object(Bucket=current_app.config.get("S3_IMAGE_BUCKET"), Key=url[len(prefix):])
        return
    if not url.startswith("/uploads/"):
        return
    path = os.path.join(current_app.config.get("UPLOAD_FOLDER"), url[len("/uploads/"):])
    if os.path.exists(path):
        os.remove(path)

def read_uploaded_image(field, folder):
    """
    Store the image uploaded in ``request.files[field]``, if any.

    Returns:
        str or None: The stored image URL, or None when no file was sent.

    Raises:
        ImageValidationError: If the uploaded file is not an acceptable image.
    """
    upload = request.files.get(field)
    if not upload or not upload.filename:
        return None
    data = upload.read()
    if not data:
        return None
    return save_image(data, upload.filename, folder)

def sanitize_html(html):
    """
    Strip scripts, event handlers and any markup outside the chapter whitelist.
    """
    if not html:
        return ""
    html = re.sub(r'<(script|style)\b[^>]*>.*?</\1\s*>', '', html, flags=re.IGNORECASE | re.DOTALL)
    return bleach.clean(
        html,
        tags=ALLOWED_CONTENT_TAGS,
        attributes=ALLOWED_CONTENT_ATTRIBUTES,
        protocols=['http', 'https', 'mailto'],
        strip=True,
    )

def count_words(html):
    text = bleach.clean(html or "", tags=[], strip=True)
    return len(text.split())

def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("true", "1", "on", "yes")

def request_data():
    """Return the JSON body if one was sent, otherwise the submitted form."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form

def is_valid_password(password: str) -> bool:
    """
    Checks if the provided password is valid based on specific criteria.

    A valid password must:
    - Be at least 8 characters long.
    - Contain at least one lowercase letter.
    - Contain at least one uppercase letter.
    - Contain at least one digit.
    - Contain at least one special character (non-alphanumeric).

    Args:
        password (str): The password string to be validated.

    Returns:
        bool: True if the password is valid, False otherwise.
    """
    if not password:
        return False
    pattern = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[\W_]).{8,}$")
    return pattern.match(password) is not None

def generate_access_token(user):
    """Issue the session token stored in the ``access_token`` cookie."""
    return create_access_token(identity=str(user.id), additional_claims={"role": user.role})

def generate_reset_token(user):
    return create_access_token(
        identity=str(user.id),
        expires_delta=timedelta(hours=24),
        additional_claims={"action": "reset_password"}
    )

def pagination_meta(pagination):
    return {
        "page": pagination.page,
        "per_page": pagination.per_page,
        "total": pagination.total,
        "total_pages": pagination.pages,
        "has_next": pagination.has_next,
        "has_prev": pagination.has_prev,
        "next_page": pagination.next_num if pagination.has_next else None,
        "prev_page": pagination.prev_num if pagination.has_prev else None,
    }

def get_current_user():
    """
    Retrieves the current user based on the access token stored in the cookies.

    This function checks for an access token in the request cookies. If the token is found, it attempts to decode it to extract the user ID. If successful, it retrieves the corresponding user from the database. If the token is missing, invalid, or does not contain a user ID, the function returns None.

    Returns:
        User or None: The current user object if found, otherwise None.
    """
    token = request.cookies.get("access_token")
    if not token:
        return None
    try:
        decoded_token = decode_token(token)
    except Exception as e:
        logging.warning(f"Failed to decode token: {e}")
        return None
    if decoded_token.get("action"):
        return None
    user_id = decoded_token.get("sub")
    if not user_id:
        logging.warning("Token decoded but no user id found.")
        return None
    return User.query.get(int(user_id))

def is_authenticated(func):
    """
    Decorator to check if a user is authenticated before executing a function.

    Unauthenticated requests receive a 401 JSON error instead of reaching the view.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        return func(*args, **kwargs)
    return wrapper

def is_admin(func):
    """
    Decorator to restrict access to admin users only.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        if not user.is_admin:
            return jsonify({"error": "Unauthorized"}), 403
        return func(*args, **kwargs)
    return wrapper

def is_novel_author_or_admin(func):
    """
    Checks if the current user is the author of a novel or an admin.

    The novel is taken from the ``novel_id`` URL parameter. Missing novels
    yield a 404 and novels owned by someone else a 403, both as JSON.

    Args:
        func (Callable): The view function to be wrapped.

    Returns:
        Callable: The wrapped function that includes permission checks.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        novel_id = kwargs.get("novel_id")
        if not novel_id:
            return jsonify({"error": "novel_id not provided"}), 400
        novel = Novel.query.get(novel_id)
        if not novel:
            return jsonify({"error": "Novel not found"}), 404
        if novel.author_id != user.id and not user.is_admin:
            return jsonify({"error": "You do not have permission to access this novel"}), 403
        return func(*args, **kwargs)
    return wrapper

def is_comment_moderator(func):
    """
    Checks that the current user may remove a comment.

    The comment's author, the author of the novel the comment was posted on
    and admins are allowed. Other users receive a 403.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({"error": "Authentication required"}), 401
        comment = Comment.query.get(kwargs.get("comment_id"))
        if not comment:
            return jsonify({"error": "Comment not found"}), 404
        novel_author_id = comment.chapter.novel.author_id
        if comment.user_id != user.id and novel_author_id != user.id and not user.is_admin:
            return jsonify({"error": "Not authorized to delete this comment"}), 403
        return func(*args, **kwargs)
    return wrapper

def increment_view_count(model, object_id):
    """
    Add one to ``view_count`` in a single UPDATE, leaving ``updated_at`` untouched.
    """
    model.query.filter_by(id=object_id).update(
        {model.view_count: model.view_count + 1, model.updated_at: model.updated_at},
        synchronize_session=False
    )
