"""Signed download links for pack documents.

Document bytes never pass through Proof Pack: the owner's client uploads
to the S3-compatible bucket and the disclosure gateway hands buyers a
short-lived presigned GET for the stored key.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

if TYPE_CHECKING:
    from proofpack.core.config import S3Settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """The object store refused or failed an operation on bucket/key."""

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        key: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.key = key
        self.operation = operation


class ObjectStoreClient:
    """Thin wrapper over a boto3 S3 client.

    Signing is local and synchronous; the disclosure gateway calls it
    through asyncio.to_thread all the same, since boto3 may refresh
    credentials over the network.
    """

    def __init__(
        self,
        endpoint_url: str,
        access_key: str,
        secret_key: str,
        region: str = "us-east-1",
        *,
        connect_timeout: float = 5.0,
        read_timeout: float = 5.0,
        max_retries: int = 2,
    ) -> None:
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=Config(
                signature_version="s3v4",
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"mode": "standard", "max_attempts": max_retries},
            ),
        )
        self.endpoint_url = endpoint_url

    @classmethod
    def from_settings(cls, settings: S3Settings) -> ObjectStoreClient:
        return cls(
            settings.endpoint,
            settings.access_key.get_secret_value(),
            settings.secret_key.get_secret_value(),
            settings.region,
            connect_timeout=settings.timeout,
            read_timeout=settings.timeout,
        )

    def generate_presigned_url(
        self,
        bucket: str,
        key: str,
        *,
        expires_in: int = 300,
        download_name: str | None = None,
    ) -> str:
        """Presigned GET URL for bucket/key valid for `expires_in` seconds.

        With `download_name` the response is served as an attachment under
        that file name instead of the opaque storage key.

        Raises:
            StorageError: boto3 could not sign the request.
        """
        params = {"Bucket": bucket, "Key": key}
        if download_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{download_name}"'
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object", Params=params, ExpiresIn=expires_in
            )
        except (ClientError, BotoCoreError) as e:
            logger.warning("Signing %s/%s failed: %s", bucket, key, e)
            raise StorageError(
                f"Could not sign download of {key}: {e}",
                bucket=bucket,
                key=key,
                operation="generate_presigned_url",
            ) from e
