from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .lottery import AuditEventRecord, LotteryRun  # noqa: F401

__all__ = [
    "Base",
    "AuditEventRecord",
    "LotteryRun",
]
