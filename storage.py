"""
storage.py
Blob storage for photos, logos and banners, plus upload tracking in the
`uploaded_files` table.
"""

from __future__ import annotations

import time
import uuid
from pathlib import Path

from supabase import Client, create_client

from db import utc_now_iso
from errors import ConsoleError, RemoteStoreError, ValidationError
from logger import get_logger
from settings import Settings

logger = get_logger(__name__)


class LocalBlobStore:
    """Files under `root/<bucket>/<path>`, served from `base_url`."""

    def __init__(self, root: str | Path, base_url: str = "/uploads"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, bucket: str, path: str) -> Path:
        target = (self.root / bucket / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValidationError(f"Invalid storage path: {path!r}")
        return target

    def put(self, bucket: str, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        target = self._path(bucket, path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise RemoteStoreError(f"Upload failed: {exc}") from exc
        return f"{self.base_url}/{bucket}/{path}"

    def remove(self, bucket: str, paths: list[str]) -> None:
        for path in paths:
            try:
                self._path(bucket, path).unlink(missing_ok=True)
            except OSError as exc:
                raise RemoteStoreError(f"Remove failed: {exc}") from exc

    def list(self, bucket: str, folder: str = "") -> list[dict]:
        base = self.root / bucket / folder
        if not base.is_dir():
            return []
        return [
            {"name": p.name, "size": p.stat().st_size}
            for p in sorted(base.iterdir())
            if p.is_file()
        ]


class SupabaseBlobStore:
    def __init__(self, client: Client):
        self.client = client

    def put(self, bucket: str, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        try:
            self.client.storage.from_(bucket).upload(
                path=path,
                file=data,
                file_options={"content-type": content_type, "cache-control": "3600", "upsert": "false"},
            )
            return self.client.storage.from_(bucket).get_public_url(path)
        except Exception as exc:  # storage3 raises its own hierarchy plus httpx errors
            raise RemoteStoreError(f"Upload failed: {exc}") from exc

    def remove(self, bucket: str, paths: list[str]) -> None:
        try:
            self.client.storage.from_(bucket).remove(paths)
        except Exception as exc:
            raise RemoteStoreError(f"Remove failed: {exc}") from exc

    def list(self, bucket: str, folder: str = "") -> list[dict]:
        try:
            return self.client.storage.from_(bucket).list(folder)
        except Exception as exc:
            raise RemoteStoreError(f"List failed: {exc}") from exc


def build_blob_store(settings: Settings):
    if settings.STORAGE_BACKEND == "supabase":
        return SupabaseBlobStore(create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY))
    return LocalBlobStore(settings.UPLOAD_DIR, settings.UPLOAD_BASE_URL)


def upload_with_tracking(blobs, store, *, bucket: str, folder: str, entity_type: str,
                         entity_id: str, field_name: str, filename: str, data: bytes,
                         content_type: str = "image/jpeg", uploaded_by: str | None = None) -> str:
    """
    Upload a file and record it in `uploaded_files`. Returns the public URL.
    A failed upload raises; a failed audit insert is only logged.
    """
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "jpg"
    path = f"{folder}/{entity_type}_{entity_id}_{field_name}_{int(time.time() * 1000)}.{ext}"
    url = blobs.put(bucket, path, data, content_type)
    try:
        store.insert(
            "uploaded_files",
            {
                "id": str(uuid.uuid4()),
                "file_path": path,
                "file_name": filename,
                "bucket_name": bucket,
                "file_type": content_type,
                "file_size": len(data),
                "uploaded_by": uploaded_by,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "field_name": field_name,
                "public_url": url,
                "is_active": True,
                "uploaded_at": utc_now_iso(),
            },
        )
    except ConsoleError:
        logger.exception("Uploaded %s but could not record it in uploaded_files", path)
    return url
