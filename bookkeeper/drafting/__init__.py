"""Transaction drafting."""

from bookkeeper.drafting.drafter import (
    TransactionDrafter,
    classify_user,
    decide_action,
    extract_remark,
)

__all__ = ["TransactionDrafter", "classify_user", "decide_action", "extract_remark"]
