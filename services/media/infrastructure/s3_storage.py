from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Sequence

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from services.media.application.interfaces import ObjectStore
from services.media.config import MediaConfig
from services.media.domain.errors import (
    NotFound,
    ObjectStoreError,
    TransientStoreError,
)
from services.media.domain.upload import ObjectInfo, PartResult

_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchUpload", "NotFound", "404"}
_THROTTLE_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "InternalError",
    "ServiceUnavailable",
}


def create_s3_client(config: MediaConfig):
    return boto3.client(
        "s3",
        endpoint_url=config.storage_endpoint_url,
        region_name=config.storage_region,
        aws_access_key_id=config.storage_access_key,
        aws_secret_access_key=config.storage_secret_key,
        config=BotoConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


@contextmanager
def _translate_errors(action: str, object_key: str):
    try:
        yield
    except ClientError as exc:
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        message = f"{action} failed for {object_key}: {code or status}"
        if code in _NOT_FOUND_CODES or status == 404:
            raise NotFound(message) from exc
        if code in _THROTTLE_CODES or status >= 500:
            raise TransientStoreError(message) from exc
        raise ObjectStoreError(message) from exc
    except BotoCoreError as exc:
        raise TransientStoreError(f"{action} failed for {object_key}: {exc}") from exc


class S3ObjectStore(ObjectStore):
    def __init__(self, client, *, bucket_name: str) -> None:
        self._client = client
        self._bucket_name = bucket_name

    def create_multipart_upload(self, object_key: str, content_type: str) -> str:
        with _translate_errors("CreateMultipartUpload", object_key):
            response = self._client.create_multipart_upload(
                Bucket=self._bucket_name,
                Key=object_key,
                ContentType=content_type,
                CacheControl="max-age=31536000",
            )
        return response["UploadId"]

    def upload_part(
        self, *, object_key: str, upload_id: str, part_number: int, body: bytes
    ) -> str:
        with _translate_errors(f"UploadPart {part_number}", object_key):
            response = self._client.upload_part(
                Bucket=self._bucket_name,
                Key=object_key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=body,
            )
        return response["ETag"]

    def complete_multipart_upload(
        self, *, object_key: str, upload_id: str, parts: Sequence[PartResult]
    ) -> str | None:
        with _translate_errors("CompleteMultipartUpload", object_key):
            response = self._client.complete_multipart_upload(
                Bucket=self._bucket_name,
                Key=object_key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"ETag": part.etag, "PartNumber": part.part_number}
                        for part in parts
                    ]
                },
            )
        return response.get("Location")

    def abort_multipart_upload(self, *, object_key: str, upload_id: str) -> None:
        with _translate_errors("AbortMultipartUpload", object_key):
            self._client.abort_multipart_upload(
                Bucket=self._bucket_name, Key=object_key, UploadId=upload_id
            )

    def generate_part_url(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        expires_in_seconds: int,
    ) -> str:
        expires = max(expires_in_seconds, 60)
        return self._client.generate_presigned_url(
            ClientMethod="upload_part",
            Params={
                "Bucket": self._bucket_name,
                "Key": object_key,
                "UploadId": upload_id,
                "PartNumber": part_number,
            },
            ExpiresIn=expires,
        )

    def put_object(self, object_key: str, body: bytes, content_type: str) -> None:
        with _translate_errors("PutObject", object_key):
            self._client.put_object(
                Bucket=self._bucket_name,
                Key=object_key,
                Body=body,
                ContentType=content_type,
                CacheControl="max-age=31536000",
            )

    def get_object(self, object_key: str, byte_range: str | None = None) -> bytes:
        params = {"Bucket": self._bucket_name, "Key": object_key}
        if byte_range:
            params["Range"] = byte_range
        with _translate_errors("GetObject", object_key):
            response = self._client.get_object(**params)
            return response["Body"].read()

    def iter_object(self, object_key: str, chunk_size: int) -> Iterator[bytes]:
        with _translate_errors("GetObject", object_key):
            response = self._client.get_object(Bucket=self._bucket_name, Key=object_key)
            body = response["Body"]
            try:
                yield from body.iter_chunks(chunk_size)
            finally:
                body.close()

    def head_object(self, object_key: str) -> ObjectInfo:
        with _translate_errors("HeadObject", object_key):
            response = self._client.head_object(Bucket=self._bucket_name, Key=object_key)
        return ObjectInfo(
            size=int(response["ContentLength"]),
            content_type=response.get("ContentType") or "application/octet-stream",
        )


def create_object_store(config: MediaConfig) -> ObjectStore:
    client = create_s3_client(config)
    return S3ObjectStore(client, bucket_name=config.storage_bucket)
