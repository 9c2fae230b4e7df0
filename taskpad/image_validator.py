from dataclasses import dataclass

from .errors import ImageTooLarge, InvalidImageType

MAX_IMAGE_BYTES = 5 * 1024 * 1024
IMAGE_PREFIX = 'image/'


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_file_storage(cls, fs):
        """Read a werkzeug FileStorage; None when the file field was left empty."""
        if fs is None or not fs.filename:
            return None
        data = fs.read()
        if not data:
            return None
        return cls(filename=fs.filename, content_type=fs.mimetype or '', data=data)


def validate(upload: ImageUpload, max_bytes: int = MAX_IMAGE_BYTES) -> None:
    if not (upload.content_type or '').startswith(IMAGE_PREFIX):
        raise InvalidImageType(upload.content_type)
    if upload.size > max_bytes:
        raise ImageTooLarge(upload.size, max_bytes)
