class BaseDynamoArchiveError(Exception):
    pass


class ValidationError(BaseDynamoArchiveError):
    pass


class CodecError(ValidationError):
    pass


class ThroughputUnchangedError(ValidationError):
    pass


class NotFoundError(BaseDynamoArchiveError):
    pass


class TransientStoreError(BaseDynamoArchiveError):
    pass


class CapacityConflictError(BaseDynamoArchiveError):
    pass


class StreamClosedError(BaseDynamoArchiveError):
    pass


class BatchRetriesExhaustedError(BaseDynamoArchiveError):
    def __init__(self, table_name: str, attempts: int, item_count: int):
        self.table_name = table_name
        self.attempts = attempts
        self.item_count = item_count
        super().__init__(
            f"Batch of {item_count} items for table {table_name} still failing after {attempts} attempts"
        )


class TransferAbortedError(BaseDynamoArchiveError):
    def __init__(self, table_name: str, cause: Exception):
        self.table_name = table_name
        self.cause = cause
        super().__init__(f"Transfer aborted on table {table_name}: {cause}")


class TableNotActiveError(BaseDynamoArchiveError):
    def __init__(self, table_name: str, status: str | None, waited: float):
        self.table_name = table_name
        self.status = status
        super().__init__(
            f"Table {table_name} is still {status} after waiting {waited:.0f}s for it to become ACTIVE"
        )
