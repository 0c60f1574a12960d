import asyncio

import pytest

from ap_assist.pipeline.batch_scheduler import BatchScheduler, ItemOutcome


class RecordingWorker:
    """Worker recording start/end events and the peak concurrency."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.active = 0
        self.peak = 0
        self.events = []

    async def __call__(self, item):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.events.append(("start", item))
        await asyncio.sleep(0)
        self.events.append(("end", item))
        self.active -= 1
        if item in self.fail:
            raise RuntimeError(f"item {item} failed")
        return item * 10


class TestBatchScheduler:

    def test_partition(self):
        scheduler = BatchScheduler(group_size=3, inter_group_delay=0)
        assert scheduler.partition(range(7)) == [[0, 1, 2], [3, 4, 5], [6]]
        assert scheduler.partition([]) == []

    def test_groups_are_bounded_and_sequential(self, sleep_recorder):
        scheduler = BatchScheduler(group_size=3, inter_group_delay=5.0, sleep=sleep_recorder)
        worker = RecordingWorker()

        report = asyncio.run(scheduler.run(list(range(7)), worker, item_name=str))

        assert report.groups == 3
        assert worker.peak <= 3
        assert sleep_recorder.calls == [5.0, 5.0]
        assert report.counters.processed == 7
        assert [o.value for o in report.outcomes] == [i * 10 for i in range(7)]

        # nothing of the second group starts before the first group ended
        first_group_ends = max(worker.events.index(("end", i)) for i in range(3))
        assert worker.events.index(("start", 3)) > first_group_ends

    def test_failures_do_not_abort_the_batch(self, sleep_recorder):
        scheduler = BatchScheduler(group_size=2, inter_group_delay=1.0, sleep=sleep_recorder)
        worker = RecordingWorker(fail={1})

        report = asyncio.run(scheduler.run([0, 1, 2], worker, item_name=str))

        assert report.counters.succeeded == 2
        assert report.counters.failed == 1
        assert not report.all_succeeded
        assert [f.name for f in report.failures] == ["1"]
        assert report.failures[0].error == "item 1 failed"

    def test_item_outcomes_pass_through(self):
        async def worker(item):
            return ItemOutcome(name=item, success=True, flagged=item == "b")

        scheduler = BatchScheduler(group_size=3, inter_group_delay=0)
        report = asyncio.run(scheduler.run(["a", "b"], worker))

        assert report.counters.flagged == 1
        assert report.to_dict()["flagged"] == 1

    def test_progress_receives_counter_snapshots(self):
        snapshots = []
        scheduler = BatchScheduler(
            group_size=2, inter_group_delay=0,
            progress=lambda counters, outcome: snapshots.append(counters)
        )

        asyncio.run(scheduler.run([1, 2, 3], RecordingWorker(), item_name=str))

        assert [s.processed for s in snapshots] == [1, 2, 3]
        assert snapshots[0] is not snapshots[1]

    def test_failing_progress_callback_does_not_abort_the_batch(self, sleep_recorder):
        def progress(counters, outcome):
            raise ValueError("display closed")

        scheduler = BatchScheduler(group_size=2, inter_group_delay=1.0,
                                   sleep=sleep_recorder, progress=progress)

        report = asyncio.run(scheduler.run([1, 2, 3], RecordingWorker(), item_name=str))

        assert report.counters.processed == 3
        assert report.counters.succeeded == 3
        assert [o.value for o in report.outcomes] == [10, 20, 30]
        assert sleep_recorder.calls == [1.0]

    def test_no_sleep_after_single_group(self, sleep_recorder):
        scheduler = BatchScheduler(group_size=3, inter_group_delay=5.0, sleep=sleep_recorder)
        asyncio.run(scheduler.run([1, 2], RecordingWorker(), item_name=str))
        assert sleep_recorder.calls == []

    def test_empty_batch(self, sleep_recorder):
        scheduler = BatchScheduler(group_size=3, inter_group_delay=5.0, sleep=sleep_recorder)
        report = asyncio.run(scheduler.run([], RecordingWorker()))
        assert report.counters.processed == 0
        assert report.groups == 0
        assert sleep_recorder.calls == []

    def test_defaults_come_from_config(self):
        scheduler = BatchScheduler()
        assert scheduler.group_size == 3
        assert scheduler.inter_group_delay == 5.0

    def test_invalid_group_size(self):
        with pytest.raises(ValueError):
            BatchScheduler(group_size=-1)
