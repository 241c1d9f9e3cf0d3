from .main import cli_start
from .backup import backup
from .restore import restore
from .list_tables import list_tables
from .prettify import prettify
from .version import version

__all__ = [
    "cli_start",
    "backup",
    "restore",
    "list_tables",
    "prettify",
    "version",
]
