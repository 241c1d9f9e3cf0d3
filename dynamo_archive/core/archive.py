import posixpath
from datetime import datetime
from urllib.parse import urlparse

from dynamo_archive.core.models import ArchiveLocation
from dynamo_archive.exceptions import ValidationError
from dynamo_archive.utils.misc import utc_now

DATA_SUFFIX = ".json"
SCHEMA_SUFFIX = ".schema.json"
BACKUP_PATH_PREFIX = "DynamoDB-backup-"
BACKUP_PATH_TIME_FORMAT = "%Y-%m-%d-%H-%M-%S"


def default_backup_path(now: datetime | None = None) -> str:
    now = now or utc_now()
    return f"{BACKUP_PATH_PREFIX}{now.strftime(BACKUP_PATH_TIME_FORMAT)}"


def data_key(backup_path: str, table_name: str) -> str:
    return posixpath.join(backup_path, f"{table_name}{DATA_SUFFIX}")


def schema_key(backup_path: str, table_name: str) -> str:
    return posixpath.join(backup_path, f"{table_name}{SCHEMA_SUFFIX}")


def schema_location_for(data: ArchiveLocation) -> ArchiveLocation:
    """The schema object sits next to the data object: `users.json` -> `users.schema.json`."""
    stem = data.key[: -len(DATA_SUFFIX)]
    return ArchiveLocation(bucket=data.bucket, key=f"{stem}{SCHEMA_SUFFIX}")


def parse_source_uri(source: str) -> ArchiveLocation:
    """Validates a restore source such as `s3://bucket/folder/table.json`."""
    url = urlparse(source or "")
    if url.scheme != "s3":
        raise ValidationError(
            "Please provide an s3 URI as file source (ie s3://mybucketname/folder/mydynamotable.json)"
        )
    if (
        not url.netloc
        or not url.path.strip("/")
        or url.query
        or url.fragment
        or "@" in url.netloc
    ):
        raise ValidationError(
            "Please provide a simple s3 URI as file source (ie s3://mybucketname/folder/mydynamotable.json)"
        )
    if not url.path.lower().endswith(DATA_SUFFIX) or url.path.lower().endswith(
        SCHEMA_SUFFIX
    ):
        raise ValidationError("Please provide a *.json data file as source restoring backup.")
    return ArchiveLocation(bucket=url.netloc, key=url.path.lstrip("/"))
