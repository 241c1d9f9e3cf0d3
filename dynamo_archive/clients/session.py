from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Literal, Self

from aiobotocore.client import AioBaseClient
from aiobotocore.config import AioConfig
from aiobotocore.session import AioSession, get_session
from loguru import logger

from dynamo_archive.config.settings import ArchiveSettings, AwsSettings

SupportedServices = Literal["dynamodb", "s3"]


def create_session(aws: AwsSettings) -> AioSession:
    """Builds a session from explicit credentials, or the default chain when none are set."""
    session = AioSession(profile=aws.profile) if aws.profile else get_session()
    if aws.access_key_id and aws.secret_access_key:
        session.set_credentials(
            aws.access_key_id, aws.secret_access_key, aws.session_token
        )
    return session


class AioBaseClientProxy:
    """Owns the lifetime of one aiobotocore client, opened with `async with`."""

    def __init__(
        self,
        session: AioSession,
        aws: AwsSettings,
        service_name: SupportedServices,
        max_pool_connections: int = 10,
    ) -> None:
        self.session = session
        self.aws = aws
        self.service_name: SupportedServices = service_name
        self.max_pool_connections = max_pool_connections
        self._base_client: AioBaseClient | None = None
        self._exit_stack = AsyncExitStack()

    @property
    def client(self) -> AioBaseClient:
        if not self._base_client:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._base_client

    async def __aenter__(self) -> Self:
        config = AioConfig(
            max_pool_connections=self.max_pool_connections,
            retries={"mode": "standard"},
        )
        self._base_client = await self._exit_stack.enter_async_context(
            self.session.create_client(
                service_name=self.service_name,
                region_name=self.aws.region,
                endpoint_url=self.aws.endpoint_url,
                config=config,
            )
        )
        logger.debug(f"Opened {self.service_name} client in {self.aws.region}")
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self._exit_stack.__aexit__(exc_type, exc, tb)
        self._base_client = None


@asynccontextmanager
async def open_clients(
    settings: ArchiveSettings,
) -> AsyncIterator[tuple[AioBaseClient, AioBaseClient]]:
    """Opens the DynamoDB and S3 clients shared by every component of one transfer."""
    store_session = create_session(settings.store)
    archive_session = (
        store_session
        if settings.archive is None
        else create_session(settings.archive_aws)
    )
    async with (
        AioBaseClientProxy(
            store_session,
            settings.store,
            "dynamodb",
            max_pool_connections=settings.max_concurrency,
        ) as dynamodb,
        AioBaseClientProxy(archive_session, settings.archive_aws, "s3") as s3,
    ):
        yield dynamodb.client, s3.client
