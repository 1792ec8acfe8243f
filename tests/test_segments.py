"""Tests for day segmentation, gaps and break-log alignment."""

import random

from focusdial.models import BreakLog, Session
from focusdial.segments import (
    Gap,
    find_break_log_covering,
    find_gap_at,
    gaps_for_day,
    realign_break_logs,
    segments_for_day,
    worked_ms,
)
from focusdial.timeutil import MS_PER_MINUTE

from helpers import ts

DAY = ts(0)


def two_sessions():
    return [
        Session(start=ts(9), end=ts(10, 30), tag="A"),
        Session(start=ts(11), end=ts(12)),
    ]


class TestSegmentsForDay:
    """Tests for segments_for_day."""

    def test_basic_day(self):
        """Verify one segment per session, in order, with tags."""
        segs = segments_for_day(DAY, two_sessions(), ts(13))
        assert [(s.start_ms, s.end_ms, s.session_index, s.tag) for s in segs] == [
            (ts(9), ts(10, 30), 0, "A"),
            (ts(11), ts(12), 1, None),
        ]
        assert worked_ms(DAY, two_sessions(), ts(13)) == 150 * MS_PER_MINUTE

    def test_open_session_ends_at_now(self):
        """Test that an open session's segment ends at now."""
        segs = segments_for_day(DAY, [Session(start=ts(9), end=None)], ts(9, 20))
        assert segs[0].end_ms == ts(9, 20)

    def test_session_across_midnight(self):
        """Verify a session crossing midnight is clipped to today."""
        sessions = [Session(start=ts(22, day=24), end=ts(2))]
        today = segments_for_day(DAY, sessions, ts(12))
        yesterday = segments_for_day(ts(0, day=24), sessions, ts(12))
        assert [(s.start_ms, s.end_ms) for s in today] == [(ts(0), ts(2))]
        assert [(s.start_ms, s.end_ms) for s in yesterday] == [(ts(22, day=24), ts(0))]

    def test_other_days_omitted(self):
        """Test that sessions on other days produce no segments."""
        sessions = [Session(start=ts(9, day=23), end=ts(10, day=23))]
        assert segments_for_day(DAY, sessions, ts(12)) == []

    def test_ordered_by_start(self):
        sessions = [Session(start=ts(11), end=ts(12)), Session(start=ts(9), end=ts(10))]
        assert [s.session_index for s in segments_for_day(DAY, sessions, ts(13))] == [1, 0]

    def test_idempotent(self):
        """Verify repeated calls give equal results."""
        first = segments_for_day(DAY, two_sessions(), ts(13))
        assert segments_for_day(DAY, two_sessions(), ts(13)) == first


class TestGapsForDay:
    """Tests for gaps_for_day and the segment/gap partition."""

    def test_gaps_between_and_around(self):
        """Verify gaps fill midnight to now around the segments."""
        segs = segments_for_day(DAY, two_sessions(), ts(13))
        assert gaps_for_day(DAY, segs, ts(13)) == [
            Gap(ts(0), ts(9)),
            Gap(ts(10, 30), ts(11)),
            Gap(ts(12), ts(13)),
        ]

    def test_untagged_gap_lookup(self):
        gaps = gaps_for_day(DAY, segments_for_day(DAY, two_sessions(), ts(13)), ts(13))
        assert find_gap_at(gaps, ts(10, 45)) == Gap(ts(10, 30), ts(11))
        assert find_gap_at(gaps, ts(9, 30)) is None

    def test_empty_day_is_one_gap(self):
        """Test that an empty day is a single gap up to now."""
        assert gaps_for_day(DAY, [], ts(8)) == [Gap(ts(0), ts(8))]

    def test_past_day_ends_at_midnight(self):
        """Verify a past day's last gap runs to midnight."""
        day = ts(0, day=24)
        assert gaps_for_day(day, [], ts(12)) == [Gap(day, ts(0))]

    def test_partition_covers_visible_window(self):
        """Verify segments and gaps tile the visible window exactly."""
        rng = random.Random(7)
        now = ts(18)
        for _ in range(25):
            sessions = []
            cursor = DAY - 2 * 60 * MS_PER_MINUTE
            while True:
                start = cursor + rng.randint(0, 120) * MS_PER_MINUTE
                end = start + rng.randint(1, 180) * MS_PER_MINUTE
                if start >= now:
                    break
                sessions.append(Session(start=start, end=end))
                cursor = end
            segs = segments_for_day(DAY, sessions, now)
            gaps = gaps_for_day(DAY, segs, now)
            pieces = sorted([(s.start_ms, s.end_ms) for s in segs] + [(g.start_ms, g.end_ms) for g in gaps])
            assert pieces[0][0] == DAY
            assert pieces[-1][1] == now
            for (_, prev_end), (next_start, _) in zip(pieces, pieces[1:]):
                assert prev_end == next_start


class TestBreakLogs:
    """Tests for break-log lookup and realignment."""

    def test_covering_by_anchor(self):
        """Verify a log whose anchor sits in the gap covers it."""
        gap = Gap(ts(10, 30), ts(11))
        log = BreakLog(start=ts(10, 30), end=ts(11), tag="Walk", tag_ts=ts(10, 40))
        assert find_break_log_covering([log], gap, ts(10, 50)) is log

    def test_covering_by_tolerance(self):
        """Test that a log within tolerance of the gap still matches."""
        gap = Gap(ts(10, 30), ts(11))
        log = BreakLog(start=gap.start_ms - 500, end=gap.end_ms + 500, tag="Walk", tag_ts=gap.start_ms - 200)
        assert find_break_log_covering([log], gap, ts(10, 45)) is log

    def test_covering_outside_tolerance(self):
        """Test that a log too far from the gap does not match."""
        gap = Gap(ts(10, 30), ts(11))
        log = BreakLog(start=gap.start_ms - 5000, end=gap.end_ms, tag="Walk", tag_ts=gap.start_ms - 4000)
        assert find_break_log_covering([log], gap, ts(10, 45)) is None

    def test_covering_tolerance_is_tunable(self):
        gap = Gap(ts(10, 30), ts(11))
        log = BreakLog(start=gap.start_ms - 5000, end=gap.end_ms, tag="Walk", tag_ts=gap.start_ms - 4000)
        assert find_break_log_covering([log], gap, ts(10, 45), tolerance_ms=5000) is log

    def test_realign_snaps_to_gap(self):
        """Verify realigning snaps a log to its current gap."""
        sessions = [Session(start=ts(9), end=ts(10, 30)), Session(start=ts(10, 50), end=ts(12))]
        logs = [BreakLog(start=ts(10, 30), end=ts(11), tag="Walk", tag_ts=ts(10, 40))]
        assert realign_break_logs(logs, DAY, sessions, ts(13))
        assert (logs[0].start, logs[0].end) == (ts(10, 30), ts(10, 50))

    def test_realign_removes_absorbed_log(self):
        """Test that a log whose gap was absorbed by a session is removed."""
        sessions = [Session(start=ts(9), end=ts(10, 50)), Session(start=ts(10, 50), end=ts(12))]
        logs = [BreakLog(start=ts(10, 30), end=ts(11), tag="Walk", tag_ts=ts(10, 40))]
        assert realign_break_logs(logs, DAY, sessions, ts(13))
        assert logs == []

    def test_realign_leaves_other_days(self):
        """Verify logs on other days are left alone."""
        sessions = [Session(start=ts(9), end=ts(12))]
        logs = [BreakLog(start=ts(10, day=24), end=ts(11, day=24), tag="Walk")]
        assert not realign_break_logs(logs, DAY, sessions, ts(13))
        assert len(logs) == 1

    def test_realign_unchanged(self):
        logs = [BreakLog(start=ts(10, 30), end=ts(11), tag="Walk")]
        assert not realign_break_logs(logs, DAY, two_sessions(), ts(13))
