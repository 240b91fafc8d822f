from .decorators import require_role, get_current_user_id, get_current_role

from .audit import build_event, record_upload

from .sr_utils import (
    encode_findings,
    encode_structured,
    read_text_items,
    read_sop_class_uid,
)

__all__ = [
    # Decorators
    "require_role",
    "get_current_user_id",
    "get_current_role",
    # Study history
    "build_event",
    "record_upload",
    # Structured reports
    "encode_findings",
    "encode_structured",
    "read_text_items",
    "read_sop_class_uid",
]
