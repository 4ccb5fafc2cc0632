from .hooklog_service import HooklogService, QueryResult

__all__ = ["HooklogService", "QueryResult"]
