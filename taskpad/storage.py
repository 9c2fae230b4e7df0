"""Object store backends for task images.

``LocalObjectStore`` keeps objects on disk under ``UPLOAD_FOLDER/<bucket>`` and
serves them through ``storage_bp``. ``SupabaseObjectStore`` talks to Supabase
Storage. Both issue the same public URL layout (see ``object_paths``).
"""
import logging
import os

import httpx
from storage3.utils import StorageException
from supabase import create_client
from werkzeug.security import safe_join

from .errors import StorageError
from .object_paths import public_url_for

logger = logging.getLogger(__name__)


class ObjectStore:
    bucket = ''

    def upload(self, key, data: bytes, content_type: str):
        """Store ``data`` under ``key``; an existing object is never overwritten."""
        raise NotImplementedError

    def public_url(self, key) -> str:
        raise NotImplementedError

    def remove(self, keys):
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    def __init__(self, root, bucket, base_url=''):
        self.root = root
        self.bucket = bucket
        self.base_url = base_url or ''

    @property
    def bucket_dir(self):
        return os.path.join(self.root, self.bucket)

    def path_for(self, key):
        path = safe_join(self.bucket_dir, key)
        if path is None:
            raise StorageError(f'Invalid object key: {key}')
        return path

    def upload(self, key, data, content_type):
        path = self.path_for(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, 'xb') as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageError('The resource already exists') from e
        except OSError as e:
            raise StorageError(str(e)) from e
        logger.debug('Stored %s (%d bytes, %s)', key, len(data), content_type)

    def public_url(self, key):
        return public_url_for(self.base_url, self.bucket, key)

    def remove(self, keys):
        for key in keys:
            path = self.path_for(key)
            try:
                if os.path.exists(path):
                    os.remove(path)
            except OSError as e:
                raise StorageError(str(e)) from e


class SupabaseObjectStore(ObjectStore):
    def __init__(self, url, key, bucket, client=None):
        self.url = url
        self.key = key
        self.bucket = bucket
        self.client = client  # created lazily on first use

    def _get_client(self):
        if not self.client:
            self.client = create_client(self.url, self.key)
        return self.client

    def _bucket(self):
        return self._get_client().storage.from_(self.bucket)

    def upload(self, key, data, content_type):
        try:
            self._bucket().upload(
                path=key,
                file=data,
                file_options={
                    'content-type': content_type or 'image/jpeg',
                    'cache-control': '3600',
                    'upsert': 'false',
                },
            )
        except (StorageException, httpx.HTTPError) as e:
            raise StorageError(getattr(e, 'message', None) or str(e)) from e

    def public_url(self, key):
        return public_url_for(self.url, self.bucket, key)

    def remove(self, keys):
        try:
            self._bucket().remove(list(keys))
        except (StorageException, httpx.HTTPError) as e:
            raise StorageError(getattr(e, 'message', None) or str(e)) from e


def make_object_store(config):
    backend = (config.get('STORAGE_BACKEND') or 'local').lower()
    bucket = config['TASK_IMAGE_BUCKET']
    if backend == 'supabase':
        url, key = config.get('SUPABASE_URL'), config.get('SUPABASE_KEY')
        if not url or not key:
            raise RuntimeError('SUPABASE_URL and SUPABASE_KEY are required for the supabase storage backend')
        return SupabaseObjectStore(url, key, bucket)
    if backend == 'local':
        return LocalObjectStore(config['UPLOAD_FOLDER'], bucket, config.get('PUBLIC_BASE_URL', ''))
    raise RuntimeError(f'Unknown STORAGE_BACKEND: {backend}')
