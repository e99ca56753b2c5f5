"""Usage Ledger - batched consumption writes and single-level undo."""

import pytest

from spoolsync.core.domain_types import UsageMetric
from spoolsync.core.errors import InvalidUsageMetricError, NothingToUndoError, UnknownSpoolError


def test_batch_updates_server_and_cache(ledger, cache, fake_server, listener):
    result = ledger.use_batch({1: 5.0, 2: 2.5}, "weight")

    assert not result.has_failed
    assert sorted(result.succeeded_ids) == [1, 2]
    assert fake_server.spools[1]["used_weight"] == 105.0
    assert cache.get_spool(1).used_weight == 105.0
    assert cache.get_spool(2).remaining_weight == 747.5
    assert ledger.undo_available
    assert ledger.last_usage_metric is UsageMetric.WEIGHT
    assert listener.calls == [[1, 2]]


def test_length_metric_writes_length(ledger, fake_server):
    ledger.use_batch({3: 1200.0}, UsageMetric.LENGTH)

    assert fake_server.spools[3]["used_length"] == 1200.0
    assert fake_server.spools[3]["used_weight"] == 0.0


def test_undo_restores_counters_once(ledger, cache, listener):
    ledger.use_batch({1: 5.0, 2: 2.5}, "weight")

    result = ledger.undo()

    assert not result.has_failed
    assert cache.get_spool(1).used_weight == 100.0
    assert cache.get_spool(2).used_weight == 250.0
    assert not ledger.undo_available
    assert ledger.last_usage_metric is None
    assert listener.calls == [[1, 2], [1, 2]]
    with pytest.raises(NothingToUndoError):
        ledger.undo()


def test_undo_with_nothing_recorded(ledger):
    with pytest.raises(NothingToUndoError) as exc_info:
        ledger.undo()
    assert exc_info.value.http_status == 409


def test_invalid_metric_is_rejected_before_any_write(ledger, fake_server):
    ledger.use_batch({1: 5.0}, "weight")

    with pytest.raises(InvalidUsageMetricError) as exc_info:
        ledger.use_batch({2: 1.0}, "volume")

    assert exc_info.value.metric == "volume"
    assert fake_server.count("PUT", "spool/2/use") == 0
    assert ledger.undo_buffer == {1: 5.0}


def test_unknown_spool_is_rejected_before_any_write(ledger, fake_server):
    with pytest.raises(UnknownSpoolError) as exc_info:
        ledger.use_batch({1: 5.0, 99: 1.0}, "weight")

    assert exc_info.value.spool_ids == [99]
    assert fake_server.count("PUT", "spool/1/use") == 0


def test_failed_batch_keeps_previous_undo(ledger, cache, fake_server, listener):
    ledger.use_batch({3: 10.0}, "weight")
    fake_server.fail_paths["spool/2/use"] = 500

    result = ledger.use_batch({1: 5.0, 2: 2.5}, "length")

    assert result.has_failed
    assert result.failed_ids == [2]
    assert result.succeeded_ids == [1]
    assert cache.get_spool(1).used_length == 5.0
    assert ledger.undo_buffer == {3: 10.0}
    assert ledger.last_usage_metric is UsageMetric.WEIGHT
    assert listener.calls == [[3]]


def test_partially_failed_undo_keeps_the_remainder(ledger, cache, fake_server, listener):
    ledger.use_batch({1: 5.0, 2: 2.5}, "weight")
    fake_server.fail_paths["spool/2/use"] = 503

    result = ledger.undo()

    assert result.failed_ids == [2]
    assert cache.get_spool(1).used_weight == 100.0
    assert ledger.undo_buffer == {2: 2.5}
    assert listener.calls[-1] == [1]

    del fake_server.fail_paths["spool/2/use"]
    assert not ledger.undo().has_failed
    assert cache.get_spool(2).used_weight == 250.0
    assert not ledger.undo_available


def test_empty_batch_clears_undo(ledger, listener):
    ledger.use_batch({1: 5.0}, "weight")

    result = ledger.use_batch({}, "length")

    assert not result.has_failed
    assert not ledger.undo_available
    assert ledger.last_usage_metric is None
    assert listener.calls == [[1]]


def test_negative_amount_is_a_correction(ledger, fake_server):
    ledger.use_batch({2: -50.0}, "weight")

    assert fake_server.spools[2]["used_weight"] == 200.0
    assert ledger.undo_buffer == {2: -50.0}
