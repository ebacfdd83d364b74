from pgportal.db.executor import ExecutionWrapper, SchemaInfo
from pgportal.db.router import ConnectionRouter, asyncpg_pool_factory
from pgportal.db.targets import RoutingContext, TargetIdentity

__all__ = [
    "ConnectionRouter",
    "ExecutionWrapper",
    "RoutingContext",
    "SchemaInfo",
    "TargetIdentity",
    "asyncpg_pool_factory",
]
