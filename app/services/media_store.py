"""Object storage for product photos (Supabase Storage REST API)."""

import mimetypes
import time
from typing import Optional

import httpx

from app.services.result import Result

BUCKET_MISSING = "bucket_missing"
UPLOAD_ERROR = "upload_error"


def build_image_key(content_type: Optional[str], now: Optional[float] = None) -> str:
    """Timestamp-based object key, e.g. "1718000000000.jpg"."""
    millis = int((now if now is not None else time.time()) * 1000)
    extension = mimetypes.guess_extension(content_type or "") or ".jpg"
    if extension == ".jpe":
        extension = ".jpg"
    return f"{millis}{extension}"


class MediaStore:
    """Uploads bytes to a public bucket and returns their public URL."""

    def __init__(self, base_url: str, service_key: str, bucket: str, timeout_seconds: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{key}"

    def upload(self, data: bytes, key: str, content_type: str = "image/jpeg") -> Result[str]:
        """Upload (upsert) an object. Error codes: bucket_missing, upload_error."""
        if not self.base_url or not self.service_key:
            return Result.failure("Media store is not configured", UPLOAD_ERROR)

        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{key}"
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(url, headers=headers, content=data)
        except httpx.HTTPError as e:
            return Result.failure(str(e), UPLOAD_ERROR)

        if response.status_code in (200, 201):
            return Result.success(self.public_url(key))

        detail = response.text or f"HTTP {response.status_code}"
        if _is_bucket_missing(response):
            return Result.failure(f"Bucket '{self.bucket}' not found: {detail}", BUCKET_MISSING)
        return Result.failure(f"Upload failed ({response.status_code}): {detail}", UPLOAD_ERROR)


def _is_bucket_missing(response: httpx.Response) -> bool:
    # Storage answers 400 or 404 with {"error": "Bucket not found", ...}
    if response.status_code not in (400, 404):
        return False
    try:
        body = response.json()
    except ValueError:
        body = {}
    text = " ".join(str(body.get(field, "")) for field in ("error", "message")) if isinstance(body, dict) else ""
    text = (text or response.text or "").lower()
    return "bucket not found" in text or "bucket_not_found" in text
