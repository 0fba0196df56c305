import os
import secrets
import time
from typing import Optional

from fastapi import UploadFile
from werkzeug.utils import secure_filename


class UploadRejected(ValueError):
    pass


def has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(getattr(upload, "filename", ""))


def plan_upload(upload: UploadFile, kind: str, max_bytes: int) -> str:
    """Check an upload and pick its stored file name. Nothing is written yet.

    kind is the mime family the file must belong to ("image" or "video").
    """
    content_type = upload.content_type or ""
    if not content_type.startswith(f"{kind}/"):
        raise UploadRejected(f"Only {kind} files are allowed")
    if upload.size is not None and upload.size > max_bytes:
        raise UploadRejected(f"File is larger than {max_bytes // (1024 * 1024)} MB")

    safe_name = secure_filename(upload.filename or "")
    extension = os.path.splitext(safe_name)[1].lower()
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{extension}"


def save_upload(upload: UploadFile, upload_dir: str, filename: str) -> str:
    """Write the upload to disk and return the public path it is served from."""
    destination = os.path.join(upload_dir, filename)
    upload.file.seek(0)
    with open(destination, "wb") as out:
        while True:
            chunk = upload.file.read(1024 * 1024)
            if not chunk:
                break
            out.write(chunk)
    return f"/uploads/{filename}"
