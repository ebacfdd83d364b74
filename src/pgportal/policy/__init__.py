from pgportal.policy.permissions import Grant, Permission
from pgportal.policy.sql_guard import authorize, classify, normalize_sql

__all__ = ["Grant", "Permission", "authorize", "classify", "normalize_sql"]
