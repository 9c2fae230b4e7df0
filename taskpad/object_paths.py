"""Object keys for task images and the public URLs they are served under.

Keys look like ``{owner}/{random}.{ext}``. Public URLs follow the Supabase
Storage layout ``{base}/storage/v1/object/public/{bucket}/{key}`` for both
storage backends, so a key can always be recovered from a stored ``image_url``.
"""
import re
import uuid
from urllib.parse import quote, unquote, urlsplit

PUBLIC_PREFIX = '/storage/v1/object/public/'
DEFAULT_EXTENSION = 'jpg'

_EXT_STRIP = re.compile(r'[^a-z0-9]')


def extension_of(filename: str) -> str:
    if not filename:
        return ''
    return filename.rsplit('.', 1)[-1]


def normalize_extension(ext: str) -> str:
    cleaned = _EXT_STRIP.sub('', (ext or '').lower())
    return cleaned or DEFAULT_EXTENSION


def build_object_key(owner: str, file_extension: str) -> str:
    return f'{owner}/{uuid.uuid4().hex}.{normalize_extension(file_extension)}'


def marker_for(bucket: str) -> str:
    return f'{PUBLIC_PREFIX}{bucket}/'


def public_url_for(base_url: str, bucket: str, key: str) -> str:
    return f"{base_url.rstrip('/')}{marker_for(bucket)}{quote(key, safe='/')}"


def extract_object_key(public_url, bucket: str):
    """Return the object key embedded in ``public_url`` or None.

    Never raises: a URL without the bucket marker, an unparsable URL or a
    non-string all give None.
    """
    if not isinstance(public_url, str) or not public_url:
        return None
    marker = marker_for(bucket)
    try:
        path = urlsplit(public_url).path
    except ValueError:
        path = public_url
    idx = path.find(marker)
    if idx == -1:
        return None
    try:
        key = unquote(path[idx + len(marker):])
    except (TypeError, ValueError):
        return None
    return key or None


def key_belongs_to(key, owner: str) -> bool:
    """Only keys under ``owner/`` may be deleted on the owner's behalf."""
    return bool(key) and bool(owner) and key.startswith(f'{owner}/')
