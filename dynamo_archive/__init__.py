from .config.settings import ArchiveSettings, load_settings
from .core.backup import BackupReport, DynamoBackup
from .core.restore import DynamoRestore
from .version import __version__

__all__ = [
    "ArchiveSettings",
    "BackupReport",
    "DynamoBackup",
    "DynamoRestore",
    "load_settings",
    "__version__",
]
