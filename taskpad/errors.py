"""Error kinds raised by the task flow and surfaced by the blueprints.

Every error carries the HTTP status the JSON routes answer with; form routes
flash ``str(err)`` as a banner instead.
"""


class TaskError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self):
        return {'success': False, 'error': self.message, 'kind': type(self).__name__}


class NotAuthenticated(TaskError):
    status_code = 401

    def __init__(self, message: str = 'Sign in required.'):
        super().__init__(message)


class Forbidden(TaskError):
    status_code = 403

    def __init__(self, message: str = 'Not authorized to modify this task.'):
        super().__init__(message)


class NotFound(TaskError):
    status_code = 404

    def __init__(self, message: str = 'Task not found.'):
        super().__init__(message)


class ValidationError(TaskError):
    status_code = 400


class InvalidImageType(ValidationError):
    def __init__(self, content_type: str = ''):
        self.content_type = content_type
        super().__init__('Invalid image: only image files can be attached.')


class ImageTooLarge(ValidationError):
    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f'Image too large: max {limit // (1024 * 1024)}MB.')


class StorageError(TaskError):
    """Upload or delete failure reported by the object store."""
    status_code = 502


class PersistError(TaskError):
    """Relational store failure; the message is the provider's."""
    status_code = 500
