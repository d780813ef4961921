from typing import Any, Dict, List, TypedDict


class ListItemResult(TypedDict):
    id: str
    fields: Dict[str, Any]


class ToolResult(TypedDict, total=False):
    success: bool
    error: str
    count: int
    items: List[ListItemResult]
