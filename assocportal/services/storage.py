from __future__ import annotations

import mimetypes
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

import boto3

from ..config import settings
from ..core.errors import NotFound, ValidationFailure


class StorageBackend(str, Enum):
    LOCAL = "local"
    S3 = "s3"


@dataclass
class StoredFile:
    relative_path: str
    public_path: str
    local_path: Optional[str] = None


@dataclass
class RetrievedFile:
    content: bytes
    content_type: str


@dataclass
class UploadTarget:
    file_reference: str
    upload_url: str
    method: str = "PUT"
    headers: Dict[str, str] = field(default_factory=dict)
    expires_in: int = 0


def _safe_file_name(file_name: str) -> str:
    name = Path(file_name).name
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return cleaned or "file"


class StorageService:
    def __init__(self) -> None:
        backend_name = (settings.file_storage_backend or "local").lower()
        if backend_name.upper() not in StorageBackend.__members__:
            backend_name = "local"
        self.backend = StorageBackend[backend_name.upper()]
        self.upload_root = settings.uploads_root_path
        self.public_prefix = settings.uploads_public_prefix.strip("/")
        self.api_base = settings.api_base_url.rstrip("/")
        self._s3_client = None
        if self.backend == StorageBackend.LOCAL:
            self.upload_root.mkdir(parents=True, exist_ok=True)
        else:
            self._configure_s3_client()

    def _configure_s3_client(self) -> None:
        if not settings.s3_bucket:
            raise RuntimeError("S3_BUCKET must be set when using the S3 storage backend.")

        session_kwargs = {
            "region_name": settings.s3_region,
            "aws_access_key_id": settings.s3_access_key,
            "aws_secret_access_key": settings.s3_secret_key,
            "endpoint_url": settings.s3_endpoint_url,
        }
        self._s3_client = boto3.client("s3", **{k: v for k, v in session_kwargs.items() if v})

    def _normalize_relative(self, relative_path: str) -> str:
        relative = relative_path.strip().lstrip("/")
        if relative.startswith(self.public_prefix + "/"):
            relative = relative.split("/", 1)[1]
        if ".." in Path(relative).parts:
            raise ValidationFailure("Invalid file reference")
        return relative

    def _build_public_path(self, relative_path: str) -> str:
        if self.public_prefix.startswith("http"):
            base = self.public_prefix.rstrip("/")
            return f"{base}/{relative_path}"
        return f"{self.public_prefix}/{relative_path}".lstrip("/")

    def new_file_reference(self, association_id: int, file_name: str) -> str:
        return f"associations/{association_id}/documents/{uuid.uuid4().hex}_{_safe_file_name(file_name)}"

    def create_upload_target(
        self,
        association_id: int,
        file_name: str,
        content_type: Optional[str] = None,
    ) -> UploadTarget:
        """Hand out a reference plus somewhere the client can PUT the bytes."""
        reference = self.new_file_reference(association_id, file_name)
        guessed_type = content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"
        expires_in = settings.upload_url_expiry_seconds
        if self.backend == StorageBackend.LOCAL:
            return UploadTarget(
                file_reference=reference,
                upload_url=f"{self.api_base}/storage/{reference}",
                headers={"Content-Type": guessed_type},
                expires_in=expires_in,
            )

        assert self._s3_client is not None  # for type checkers
        url = self._s3_client.generate_presigned_url(
            "put_object",
            Params={"Bucket": settings.s3_bucket, "Key": reference, "ContentType": guessed_type},
            ExpiresIn=expires_in,
        )
        return UploadTarget(
            file_reference=reference,
            upload_url=url,
            headers={"Content-Type": guessed_type},
            expires_in=expires_in,
        )

    def save_file(self, relative_path: str, content: bytes, content_type: Optional[str] = None) -> StoredFile:
        relative = self._normalize_relative(relative_path)
        guessed_type = content_type or mimetypes.guess_type(relative)[0] or "application/octet-stream"
        public_path = self._build_public_path(relative)

        if self.backend == StorageBackend.LOCAL:
            target_path = self.upload_root / relative
            target_path.parent.mkdir(parents=True, exist_ok=True)
            target_path.write_bytes(content)
            return StoredFile(relative_path=relative, public_path=public_path, local_path=str(target_path))

        assert self._s3_client is not None
        self._s3_client.put_object(
            Bucket=settings.s3_bucket,
            Key=relative,
            Body=content,
            ContentType=guessed_type,
        )
        return StoredFile(relative_path=relative, public_path=public_path, local_path=None)

    def delete_file(self, relative_or_public_path: str) -> None:
        relative = self._normalize_relative(relative_or_public_path)
        if not relative:
            return
        if self.backend == StorageBackend.LOCAL:
            target = self.upload_root / relative
            if target.exists():
                target.unlink()
            return

        assert self._s3_client is not None
        self._s3_client.delete_object(Bucket=settings.s3_bucket, Key=relative)

    def retrieve_file(self, relative_or_public_path: str) -> RetrievedFile:
        relative = self._normalize_relative(relative_or_public_path)
        if self.backend == StorageBackend.LOCAL:
            target = self.upload_root / relative
            if not target.exists():
                raise NotFound("File not found")
            data = target.read_bytes()
            content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
            return RetrievedFile(content=data, content_type=content_type)

        assert self._s3_client is not None
        try:
            obj = self._s3_client.get_object(Bucket=settings.s3_bucket, Key=relative)
        except self._s3_client.exceptions.NoSuchKey:  # type: ignore[attr-defined]
            raise NotFound("File not found") from None
        content = obj["Body"].read()
        content_type = obj.get("ContentType") or mimetypes.guess_type(relative)[0] or "application/octet-stream"
        return RetrievedFile(content=content, content_type=content_type)

    def public_url(self, relative_or_public_path: str) -> str:
        relative = self._normalize_relative(relative_or_public_path)
        if self.backend == StorageBackend.S3:
            assert self._s3_client is not None
            return self._s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": settings.s3_bucket, "Key": relative},
                ExpiresIn=settings.upload_url_expiry_seconds,
            )
        path = self._build_public_path(relative)
        if path.startswith("http"):
            return path
        return f"{self.api_base}/{path.lstrip('/')}"


storage_service = StorageService()
