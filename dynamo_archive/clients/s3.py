from typing import Any, AsyncIterator

from aiobotocore.client import AioBaseClient
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from dynamo_archive.clients.base import ObjectArchive
from dynamo_archive.clients.errors import (
    is_resource_not_found_exception,
    translate_aws_error,
)
from dynamo_archive.core.stream import StreamSink

MIN_PART_SIZE = 5 * 1024 * 1024
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class S3ObjectArchive(ObjectArchive):
    """ObjectArchive backed by an aiobotocore S3 client.

    `upload_stream` pulls parts of `part_size` bytes from a StreamSink and
    sends them as a multipart upload, so at most one part is held in memory
    on top of the sink's own buffer. Objects smaller than one part go out
    with a single PutObject.
    """

    def __init__(
        self,
        client: AioBaseClient,
        part_size: int = 8 * 1024 * 1024,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    ) -> None:
        if part_size < MIN_PART_SIZE:
            raise ValueError(f"part_size must be at least {MIN_PART_SIZE} bytes")
        self._client = client
        self.part_size = part_size
        self.chunk_size = chunk_size

    async def head_object(self, bucket: str, key: str) -> dict[str, Any] | None:
        try:
            return await self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if is_resource_not_found_exception(e):
                return None
            raise translate_aws_error(e, f"HeadObject s3://{bucket}/{key}") from e
        except BotoCoreError as e:
            raise translate_aws_error(e, f"HeadObject s3://{bucket}/{key}") from e

    async def get_object(
        self, bucket: str, key: str
    ) -> tuple[AsyncIterator[bytes], int]:
        try:
            response = await self._client.get_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, f"GetObject s3://{bucket}/{key}") from e
        return self._iter_body(response["Body"]), int(response.get("ContentLength", 0))

    async def _iter_body(self, body: Any) -> AsyncIterator[bytes]:
        async with body as stream:
            async for chunk in stream.iter_chunks(self.chunk_size):
                yield chunk

    async def put_object(self, bucket: str, key: str, body: bytes) -> None:
        try:
            await self._client.put_object(Bucket=bucket, Key=key, Body=body)
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, f"PutObject s3://{bucket}/{key}") from e

    async def upload_stream(self, bucket: str, key: str, sink: StreamSink) -> int:
        first_part = await sink.read(self.part_size)
        if len(first_part) < self.part_size:
            await self.put_object(bucket, key, first_part)
            logger.debug(f"Uploaded {len(first_part)} bytes to s3://{bucket}/{key}")
            return len(first_part)

        try:
            upload = await self._client.create_multipart_upload(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_aws_error(e, f"CreateMultipartUpload s3://{bucket}/{key}") from e
        upload_id = upload["UploadId"]

        parts: list[dict[str, Any]] = []
        total = 0
        part = first_part
        try:
            while part:
                response = await self._client.upload_part(
                    Bucket=bucket,
                    Key=key,
                    UploadId=upload_id,
                    PartNumber=len(parts) + 1,
                    Body=part,
                )
                parts.append({"ETag": response["ETag"], "PartNumber": len(parts) + 1})
                total += len(part)
                logger.debug(
                    f"Uploaded part {len(parts)} ({total} bytes so far) to s3://{bucket}/{key}"
                )
                part = await sink.read(self.part_size)
            await self._client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except BaseException as e:
            logger.warning(f"Aborting multipart upload to s3://{bucket}/{key}: {e}")
            await self._client.abort_multipart_upload(
                Bucket=bucket, Key=key, UploadId=upload_id
            )
            if isinstance(e, (ClientError, BotoCoreError)):
                raise translate_aws_error(e, f"UploadPart s3://{bucket}/{key}") from e
            raise
        return total
