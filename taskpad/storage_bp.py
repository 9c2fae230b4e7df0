import os

from flask import Blueprint, abort, current_app, send_file

from .errors import StorageError
from .object_paths import PUBLIC_PREFIX
from .storage import LocalObjectStore

storage_bp = Blueprint('storage', __name__)


# Mirrors the Supabase public object URL so stored image_urls look the same
# whichever backend issued them.
@storage_bp.route(PUBLIC_PREFIX + '<bucket>/<path:key>')
def public_object(bucket, key):
    store = current_app.extensions['taskpad.objects']
    if not isinstance(store, LocalObjectStore) or bucket != store.bucket:
        abort(404)
    try:
        path = store.path_for(key)
    except StorageError:
        abort(404)
    if not os.path.isfile(path):
        abort(404)
    return send_file(path, max_age=3600)
