"""Rich text handling: sanitization, image upload, @mentions."""
import re
from contextlib import contextmanager

import bleach
import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from flask import current_app

from .errors import BadRequest

ALLOWED_TAGS = frozenset([
    'p', 'br', 'strong', 'em', 'u', 'ol', 'ul', 'li', 'a', 'img',
    'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'code', 'pre', 'blockquote',
])
ALLOWED_ATTRIBUTES = {
    'a': ['href', 'title'],
    'img': ['src', 'alt'],
}

# "@name" not glued to a preceding word, so e-mail addresses are skipped
MENTION_PATTERN = re.compile(r'(?<![\w@])@([A-Za-z0-9_]{3,50})')


def sanitize_content(content):
    return bleach.clean(content, tags=ALLOWED_TAGS, attributes=ALLOWED_ATTRIBUTES, strip=True)


def extract_mentions(text):
    """Usernames mentioned in ``text``, first occurrence order, case-insensitively unique."""
    seen = set()
    mentions = []
    for name in MENTION_PATTERN.findall(text or ''):
        key = name.lower()
        if key not in seen:
            seen.add(key)
            mentions.append(name)
    return mentions


def configure_cloudinary(app):
    if app.config.get('CLOUDINARY_URL'):
        cloudinary.config(cloudinary_url=app.config['CLOUDINARY_URL'])


def upload_images(images):
    """Upload base64 images to Cloudinary and return the upload results.

    If one upload fails, the ones already made are removed again.
    """
    if not images:
        return []
    if not current_app.config.get('CLOUDINARY_URL'):
        raise BadRequest('Image upload is not configured')

    uploads = []
    for image_data in images:
        try:
            upload_result = cloudinary.uploader.upload(
                image_data,
                folder="stackit/questions",
                transformation=[
                    {"width": 800, "height": 600, "crop": "limit"},
                    {"quality": "auto"}
                ]
            )
        except CloudinaryError as e:
            destroy_images(uploads)
            raise BadRequest(f'Image upload failed: {e}') from e
        uploads.append(upload_result)
    return uploads


def destroy_images(uploads):
    for upload in uploads:
        try:
            cloudinary.uploader.destroy(upload['public_id'])
        except CloudinaryError:
            current_app.logger.warning('Could not remove image %s', upload['public_id'], exc_info=True)


@contextmanager
def uploaded_images(images):
    """Upload ``images`` and yield their secure URLs.

    The uploads are removed if the ``with`` block raises.
    """
    uploads = upload_images(images)
    try:
        yield [upload['secure_url'] for upload in uploads]
    except Exception:
        destroy_images(uploads)
        raise


def embed_images(description, image_urls):
    """Replace ``{image_<i>}`` placeholders with ``<img>`` tags."""
    for i, image_url in enumerate(image_urls):
        description = description.replace(f'{{image_{i}}}', f'<img src="{image_url}" alt="Question image" />')
    return description
