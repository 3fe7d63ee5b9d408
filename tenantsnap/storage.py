# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object Store - Durable blob storage for backup artifacts.

ObjectStore is the interface the backup components depend on;
S3ObjectStore implements it on top of aiobotocore. Every failure is
reported as StorageError.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Protocol, Sequence

import structlog

from tenantsnap.exceptions import StorageError

logger = structlog.get_logger()

# S3 DeleteObjects accepts at most this many keys per request
DELETE_BATCH_LIMIT = 1000

SORT_COLUMNS = ("created_at", "name", "size")


@dataclass(frozen=True)
class StoredObject:
    """An object as returned by a listing."""

    name: str
    created_at: datetime | None
    size: int | None


@dataclass
class DeleteResult:
    """Outcome of a batch delete; failed maps path to error message."""

    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class ObjectStore(Protocol):
    """Durable blob storage."""

    async def list(
        self,
        prefix: str = "",
        limit: int | None = None,
        offset: int = 0,
        sort_by: str = "created_at",
        descending: bool = False,
    ) -> List[StoredObject]:
        ...

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        ...

    async def download(self, path: str) -> bytes:
        ...

    async def delete(self, paths: Sequence[str]) -> DeleteResult:
        ...

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        ...


def sort_and_page(
    objects: List[StoredObject],
    limit: int | None,
    offset: int,
    sort_by: str,
    descending: bool,
) -> List[StoredObject]:
    """Apply the ObjectStore.list ordering and pagination to a full listing."""
    if sort_by not in SORT_COLUMNS:
        raise StorageError(
            f"Unsupported sort column: {sort_by}",
            details={"supported": list(SORT_COLUMNS)},
        )

    def sort_key(obj: StoredObject) -> tuple:
        value = getattr(obj, sort_by)
        # Missing values sort first, ties broken by name
        return (value is not None, value if value is not None else 0, obj.name)

    ordered = sorted(objects, key=sort_key, reverse=descending)
    end = None if limit is None else offset + limit
    return ordered[offset:end]


class S3ObjectStore:
    """ObjectStore backed by an S3-compatible bucket."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        page_size: int = 1000,
        session: Any = None,
    ):
        if session is None:
            from aiobotocore.session import get_session

            session = get_session()
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.page_size = page_size
        self._session = session

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[Any]:
        async with self._session.create_client(
            "s3",
            region_name=self.region,
            endpoint_url=self.endpoint_url,
        ) as client:
            yield client

    async def list(
        self,
        prefix: str = "",
        limit: int | None = None,
        offset: int = 0,
        sort_by: str = "created_at",
        descending: bool = False,
    ) -> List[StoredObject]:
        objects: List[StoredObject] = []
        try:
            async with self._client() as client:
                paginator = client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(
                    Bucket=self.bucket,
                    Prefix=prefix,
                    MaxKeys=self.page_size,
                ):
                    for obj in page.get("Contents", []):
                        objects.append(
                            StoredObject(
                                name=obj["Key"],
                                created_at=obj.get("LastModified"),
                                size=obj.get("Size"),
                            )
                        )
        except Exception as e:
            raise StorageError(
                f"Failed to list objects: {e}",
                details={"bucket": self.bucket, "prefix": prefix},
            )

        return sort_and_page(objects, limit, offset, sort_by, descending)

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> None:
        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": path,
            "Body": data,
            "ContentType": content_type,
        }
        if not upsert:
            # Conditional write: fails if the key already exists
            params["IfNoneMatch"] = "*"

        try:
            async with self._client() as client:
                await client.put_object(**params)
        except Exception as e:
            raise StorageError(
                f"Failed to upload object: {e}",
                details={"bucket": self.bucket, "path": path, "size": len(data)},
            )

        logger.debug("object_uploaded", path=path, size=len(data))

    async def download(self, path: str) -> bytes:
        try:
            async with self._client() as client:
                response = await client.get_object(Bucket=self.bucket, Key=path)
                async with response["Body"] as stream:
                    return await stream.read()
        except Exception as e:
            raise StorageError(
                f"Failed to download object: {e}",
                details={"bucket": self.bucket, "path": path},
            )

    async def delete(self, paths: Sequence[str]) -> DeleteResult:
        """
        Delete paths in batches.

        A failed batch does not stop later batches; every path ends up in
        either result.deleted or result.failed.
        """
        result = DeleteResult()
        paths = list(paths)
        if not paths:
            return result

        try:
            async with self._client() as client:
                for start in range(0, len(paths), DELETE_BATCH_LIMIT):
                    batch = paths[start:start + DELETE_BATCH_LIMIT]
                    try:
                        response = await client.delete_objects(
                            Bucket=self.bucket,
                            Delete={
                                "Objects": [{"Key": key} for key in batch],
                                "Quiet": False,
                            },
                        )
                    except Exception as e:
                        logger.error("delete_batch_failed", count=len(batch), error=str(e))
                        for key in batch:
                            result.failed[key] = str(e)
                        continue

                    for item in response.get("Deleted", []):
                        result.deleted.append(item["Key"])
                    for item in response.get("Errors", []):
                        result.failed[item["Key"]] = (
                            f"{item.get('Code', 'Error')}: {item.get('Message', '')}"
                        )
        except Exception as e:
            raise StorageError(
                f"Failed to delete objects: {e}",
                details={"bucket": self.bucket, "count": len(paths)},
            )

        return result

    async def create_signed_url(self, path: str, ttl_seconds: int) -> str:
        try:
            async with self._client() as client:
                return await client.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self.bucket, "Key": path},
                    ExpiresIn=ttl_seconds,
                )
        except Exception as e:
            raise StorageError(
                f"Failed to create signed URL: {e}",
                details={"bucket": self.bucket, "path": path},
            )
