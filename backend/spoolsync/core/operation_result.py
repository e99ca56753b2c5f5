"""Operation Result - outcome of a multi-step operation with per-item responsibility.

Invariants:
    - has_failed is True iff at least one message was recorded
    - An id is in at most one of succeeded_ids / failed_ids
    - Both renderings return "" when nothing failed
"""

from dataclasses import dataclass, field


@dataclass
class OperationResult:
    messages: list[str] = field(default_factory=list)
    succeeded_ids: list[int] = field(default_factory=list)
    failed_ids: list[int] = field(default_factory=list)

    @property
    def has_failed(self) -> bool:
        return bool(self.messages)

    def add_error(self, message: str, entity_id: int | None = None) -> None:
        self.messages.append(message)
        if entity_id is not None and entity_id not in self.failed_ids:
            self.failed_ids.append(entity_id)
            if entity_id in self.succeeded_ids:
                self.succeeded_ids.remove(entity_id)

    def add_success(self, entity_id: int) -> None:
        if entity_id not in self.succeeded_ids and entity_id not in self.failed_ids:
            self.succeeded_ids.append(entity_id)

    def merge(self, other: "OperationResult") -> "OperationResult":
        self.messages.extend(other.messages)
        for entity_id in other.failed_ids:
            if entity_id not in self.failed_ids:
                self.failed_ids.append(entity_id)
            if entity_id in self.succeeded_ids:
                self.succeeded_ids.remove(entity_id)
        for entity_id in other.succeeded_ids:
            self.add_success(entity_id)
        return self

    def build_error_dialog_message(self) -> str:
        """Multi-line rendering for dialogs."""
        if not self.has_failed:
            return ""
        message = "Multiple errors:\n" if len(self.messages) > 1 else "Error:\n"
        for error in self.messages:
            message += error + "\n"
        return message

    def build_single_line_message(self) -> str:
        """Single-line rendering for logs and status bars."""
        if not self.has_failed:
            return ""
        message = "Multiple errors: " if len(self.messages) > 1 else "Error: "
        for error in self.messages:
            message += error + ". "
        return message

    def to_dict(self) -> dict:
        return {
            "ok": not self.has_failed,
            "messages": list(self.messages),
            "succeeded_ids": list(self.succeeded_ids),
            "failed_ids": list(self.failed_ids),
        }


def failed(message: str, entity_id: int | None = None) -> OperationResult:
    result = OperationResult()
    result.add_error(message, entity_id)
    return result
