"""Operation Result - renderings and per-item responsibility."""

from spoolsync.core.operation_result import OperationResult, failed


def test_empty_result_renders_nothing():
    result = OperationResult()
    assert not result.has_failed
    assert result.build_error_dialog_message() == ""
    assert result.build_single_line_message() == ""


def test_single_error_renderings():
    result = failed("Failed to get vendors")
    assert result.build_error_dialog_message() == "Error:\nFailed to get vendors\n"
    assert result.build_single_line_message() == "Error: Failed to get vendors. "


def test_multiple_error_renderings():
    result = OperationResult()
    result.add_error("A")
    result.add_error("B")
    assert result.build_error_dialog_message() == "Multiple errors:\nA\nB\n"
    assert result.build_single_line_message() == "Multiple errors: A. B. "


def test_failure_overrides_success_for_an_id():
    result = OperationResult()
    result.add_success(1)
    result.add_success(2)
    result.add_error("spool 1 failed", 1)
    result.add_success(1)

    assert result.succeeded_ids == [2]
    assert result.failed_ids == [1]


def test_merge():
    first = OperationResult()
    first.add_success(1)
    second = OperationResult()
    second.add_error("x", 1)
    second.add_success(3)

    merged = first.merge(second)

    assert merged is first
    assert merged.failed_ids == [1]
    assert merged.succeeded_ids == [3]
    assert merged.to_dict() == {
        "ok": False,
        "messages": ["x"],
        "succeeded_ids": [3],
        "failed_ids": [1],
    }
