from datetime import datetime, timezone

from features.executions.aggregator import aggregate_executions, derive_status, is_status_update
from features.executions.models import ExecutionStatus, LogEvent


def _by_id(views):
    return {v.execution_id: v for v in views}


def test_completed_execution_uses_end_status(start_row, row, end_row):
    views = aggregate_executions([
        start_row("E1", t=0),
        row("E1", "n1", "success", t=1),
        end_row("E1", "success", t=2),
    ])
    assert len(views) == 1
    view = views[0]
    assert view.execution_id == "E1"
    assert view.status == ExecutionStatus.SUCCESS
    assert view.node_count == 3
    assert view.started_at == datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
    assert view.last_update == datetime(2026, 1, 15, 12, 0, 2, tzinfo=timezone.utc)


def test_node_error_without_end_is_error(start_row, row):
    [view] = aggregate_executions([start_row("E2", t=0), row("E2", "n1", "error", t=1)])
    assert view.status == ExecutionStatus.ERROR
    assert view.node_count == 2
    assert all(e.node_name != "_END" for e in view.logs)


def test_only_start_event_is_running(start_row):
    [view] = aggregate_executions([start_row("E3", t=0)])
    assert view.status == ExecutionStatus.RUNNING
    assert view.node_count == 1


def test_views_are_ordered_most_recent_first(start_row):
    views = aggregate_executions([start_row("E4", t=5), start_row("E5", t=10)])
    assert [v.execution_id for v in views] == ["E5", "E4"]


def test_error_wins_regardless_of_order_or_end(start_row, row, end_row):
    events = [
        end_row("X", "success", t=9),
        row("X", "n2", "success", t=3),
        row("X", "n1", "error", t=2),
        row("X", "n3", "error", t=4),
        start_row("X", t=0),
    ]
    assert aggregate_executions(events)[0].status == ExecutionStatus.ERROR
    assert aggregate_executions(list(reversed(events)))[0].status == ExecutionStatus.ERROR


def test_end_success_overrides_running_nodes(start_row, row, end_row):
    [view] = aggregate_executions([
        start_row("X", t=0),
        row("X", "n1", "running", t=1),
        end_row("X", "success", t=2),
    ])
    assert view.status == ExecutionStatus.SUCCESS


def test_end_error_status_is_used_verbatim(start_row, row, end_row):
    # The _END row itself being "error" also trips the any-error rule.
    [view] = aggregate_executions([start_row("X"), row("X", "n1", "success", t=1), end_row("X", "error", t=2)])
    assert view.status == ExecutionStatus.ERROR


def test_all_nodes_success_without_end_reads_as_success(start_row, row):
    # Speculative completion: the _END event may simply not have landed yet,
    # or the execution may still be about to start another node.
    [view] = aggregate_executions([
        start_row("X", t=0),
        row("X", "n1", "success", t=1),
        row("X", "n2", "success", t=2),
    ])
    assert view.status == ExecutionStatus.SUCCESS


def test_mid_flight_node_keeps_execution_running(start_row, row):
    [view] = aggregate_executions([
        start_row("X", t=0),
        row("X", "n1", "success", t=1),
        row("X", "n2", "running", t=2),
    ])
    assert view.status == ExecutionStatus.RUNNING


def test_appended_close_event_is_authoritative_for_its_node(start_row, row):
    [view] = aggregate_executions([
        start_row("X", t=0, seq=0),
        row("X", "n1", "running", t=1, seq=1),
        row("X", "n1", "success", t=1, seq=2),
    ])
    assert view.status == ExecutionStatus.SUCCESS
    assert view.node_count == 3


def test_grouping_is_exhaustive(start_row, row, end_row):
    events = [
        start_row("A", t=0), row("B", "n1", "success", t=3), start_row("B", t=1),
        row("A", "n1", "running", t=2), end_row("B", "success", t=4), start_row("C", t=7),
    ]
    views = aggregate_executions(events)
    seen = sorted((e.execution_id, e.node_name, e.timestamp) for v in views for e in v.logs)
    expected = sorted((e.execution_id, e.node_name, e.timestamp) for e in map(LogEvent.from_row, events))
    assert seen == expected
    assert sum(v.node_count for v in views) == len(events)


def test_aggregation_is_idempotent(start_row, row, end_row):
    events = [start_row("A", t=0), row("A", "n1", "success", t=1), start_row("B", t=0), end_row("A", t=2)]
    first = [v.to_dict() for v in aggregate_executions(events)]
    second = [v.to_dict() for v in aggregate_executions(events)]
    assert first == second


def test_events_sorted_within_group_and_started_at_ties_keep_fetch_order(row):
    events = [row("A", "n", t=2), row("B", "n", t=1), row("A", "m", t=1)]
    views = aggregate_executions(events)
    groups = _by_id(views)
    assert [e.node_name for e in groups["A"].logs] == ["m", "n"]
    assert [e.node_name for e in groups["B"].logs] == ["n"]
    # A and B both start at t=1: A was seen first in the batch.
    assert [v.execution_id for v in views] == ["A", "B"]


def test_equal_timestamps_ordered_by_seq(row):
    [view] = aggregate_executions([
        row("A", "second", t=1, seq=2),
        row("A", "first", t=1, seq=1),
    ])
    assert [e.node_name for e in view.logs] == ["first", "second"]


def test_events_without_execution_id_are_dropped(start_row, row):
    views = aggregate_executions([start_row("A"), row(None, "orphan"), row("", "blank")])
    assert [v.execution_id for v in views] == ["A"]
    assert views[0].node_count == 1


def test_undated_events_sort_last(start_row, row):
    [view] = aggregate_executions([
        row("A", "undated", t=None),
        start_row("A", t=0),
        row("A", "bad", timestamp="not-a-date"),
        row("A", "n1", "running", t=1),
    ])
    assert [e.node_name for e in view.logs] == ["_START", "n1", "undated", "bad"]
    assert view.last_update == datetime(2026, 1, 15, 12, 0, 1, tzinfo=timezone.utc)


def test_undated_executions_sort_after_dated_ones(start_row, row):
    views = aggregate_executions([row("U", "n1", t=None), start_row("D", t=0)])
    assert [v.execution_id for v in views] == ["D", "U"]
    assert views[1].started_at is None


def test_unknown_status_reads_as_running(start_row, row):
    [view] = aggregate_executions([start_row("A"), row("A", "n1", "weird", t=1)])
    assert view.logs[1].status == ExecutionStatus.RUNNING
    assert view.status == ExecutionStatus.RUNNING


def test_status_update_flag_from_metadata(start_row):
    [view] = aggregate_executions([start_row("A", metadata={"message_type": "status_update", "source": "x"})])
    assert view.is_status_update is True
    assert view.metadata["source"] == "x"


def test_status_update_flag_from_webhook_payload(start_row, status_payload, text_payload):
    [receipt] = aggregate_executions([start_row("A", input_data=status_payload())])
    [message] = aggregate_executions([start_row("B", input_data=text_payload())])
    assert receipt.is_status_update is True
    assert message.is_status_update is False


def test_derive_status_accepts_events_directly():
    events = [
        LogEvent(execution_id="A", node_name="_START"),
        LogEvent(execution_id="A", node_name="n1", status=ExecutionStatus.SUCCESS),
    ]
    assert derive_status(events) == ExecutionStatus.SUCCESS
    assert derive_status(events[:1]) == ExecutionStatus.RUNNING
    assert is_status_update(events[0]) is False


def test_accepts_mixed_rows_and_events(start_row):
    event = LogEvent(
        execution_id="A", node_name="n1", status=ExecutionStatus.SUCCESS,
        timestamp=datetime(2026, 1, 15, 12, 0, 1, tzinfo=timezone.utc),
    )
    [view] = aggregate_executions([start_row("A"), event])
    assert view.node_count == 2
    assert view.status == ExecutionStatus.SUCCESS


def test_empty_batch():
    assert aggregate_executions([]) == []
