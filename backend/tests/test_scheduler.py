"""
Unit tests for the rotation scheduler.
"""
import random
from datetime import date, datetime, timezone

from conftest import make_episodes, make_options
from schedularr.models.records import EpisodeRecord, MovieEntry, RotationPolicy
from schedularr.services.content_pool import ContentPool
from schedularr.services.events import EventLog
from schedularr.services.scheduler import RotationScheduler
from schedularr.services.timeslots import SlotSequence, TimeSlotCalendar


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def run_scheduler(pool, content_ids, slots, rng=None, events=None, **kwargs):
    options = make_options(content_ids, slots, **kwargs)
    calendar = TimeSlotCalendar(slots, options.timezone_offset)
    scheduler = RotationScheduler(pool, calendar, options, rng=rng or random.Random(1), events=events)
    return scheduler.generate()


class TestConcreteScenario:
    """Two shows in a two-slot evening."""

    def test_second_show_fills_next_slot_up_to_day_end(self):
        pool = ContentPool({
            "a": make_episodes("a", 1, duration=25),
            "b": make_episodes("b", 1, duration=30),
        })
        schedule = run_scheduler(pool, ["a", "b"], ["20:00", "20:30"])

        assert [(s.content_id, s.scheduled_time) for s in schedule] == [
            ("a", utc(2024, 1, 1, 20, 0)),
            ("b", utc(2024, 1, 1, 20, 30)),
        ]
        assert schedule[0].end_time == utc(2024, 1, 1, 20, 25)
        assert schedule[1].end_time == utc(2024, 1, 1, 21, 0)

    def test_episode_running_past_day_end_is_rejected(self):
        events = EventLog()
        pool = ContentPool({
            "a": make_episodes("a", 1, duration=25),
            "b": make_episodes("b", 1, duration=40),
        })
        schedule = run_scheduler(pool, ["a", "b"], ["20:00", "20:30"], events=events)

        assert [s.content_id for s in schedule] == ["a"]
        rejected = events.named("schedule.rejected")
        assert rejected and rejected[0].data["content_id"] == "b"


class TestDayBoundaryRejection:
    """Tests for candidates that do not fit before the day ends."""

    def test_rejected_episode_is_placed_later_in_same_position(self):
        events = EventLog()
        pool = ContentPool({
            "a": [
                EpisodeRecord(content_id="a", season=1, episode_number=1, duration=30),
                EpisodeRecord(content_id="a", season=1, episode_number=2, duration=60),
                EpisodeRecord(content_id="a", season=1, episode_number=3, duration=30),
            ],
            "b": make_episodes("b", 4),
        })
        schedule = run_scheduler(pool, ["a", "b"], ["20:00", "20:30", "21:00"],
                                 end=date(2024, 1, 2), events=events)

        rejected = [e.data for e in events.named("schedule.rejected") if e.data["content_id"] == "a"]
        assert rejected[0]["start"] == utc(2024, 1, 1, 21, 0).isoformat()

        placed_a = [(s.season, s.episode, s.scheduled_time) for s in schedule if s.content_id == "a"]
        assert placed_a[:2] == [
            (1, 1, utc(2024, 1, 1, 20, 0)),
            (1, 2, utc(2024, 1, 2, 20, 30)),
        ]

    def test_round_robin_double_moves_on_after_rejection(self):
        pool = ContentPool({
            "a": make_episodes("a", 2, duration=90),
            "b": make_episodes("b", 4, duration=30),
        })
        slots = ["20:00", "20:30"]
        options = make_options(["a", "b"], slots, end=date(2024, 1, 3),
                               rotation_policy=RotationPolicy.ROUND_ROBIN_DOUBLE)
        scheduler = RotationScheduler(pool, TimeSlotCalendar(slots), options, rng=random.Random(1))

        schedule = scheduler.generate()

        assert [s.content_id for s in schedule] == ["b", "b", "b", "b"]
        assert [s.episode for s in schedule] == [1, 2, 3, 4]
        assert scheduler.cursors["a"] == 0

    def test_round_robin_double_keeps_cursor_of_rejected_show(self):
        pool = ContentPool({
            "a": [
                EpisodeRecord(content_id="a", season=1, episode_number=1, duration=30),
                EpisodeRecord(content_id="a", season=1, episode_number=2, duration=60),
            ],
            "b": make_episodes("b", 4),
        })
        schedule = run_scheduler(pool, ["a", "b"], ["20:00", "20:30"], end=date(2024, 1, 3),
                                 rotation_policy="round_robin_double")

        # a's second episode misses 20:30 on day one, b takes day two
        assert [s.content_id for s in schedule] == ["a", "b", "b", "a"]
        placed_a = [(s.episode, s.scheduled_time) for s in schedule if s.content_id == "a"]
        assert placed_a == [(1, utc(2024, 1, 1, 20, 0)), (2, utc(2024, 1, 3, 20, 0))]


class TestRotationPolicies:
    """Tests for candidate selection order."""

    def test_round_robin_alternates(self):
        pool = ContentPool({"a": make_episodes("a", 3), "b": make_episodes("b", 3)})
        slots = list(SlotSequence("20:00", "22:00", 30))
        schedule = run_scheduler(pool, ["a", "b"], slots)
        assert [s.content_id for s in schedule] == ["a", "b", "a", "b"]

    def test_round_robin_skips_exhausted_show(self):
        pool = ContentPool({"a": make_episodes("a", 1), "b": make_episodes("b", 3)})
        slots = list(SlotSequence("20:00", "22:00", 30))
        schedule = run_scheduler(pool, ["a", "b"], slots)
        assert [s.content_id for s in schedule] == ["a", "b", "b", "b"]

    def test_round_robin_double_pairs(self):
        pool = ContentPool({"a": make_episodes("a", 4), "b": make_episodes("b", 4)})
        slots = list(SlotSequence("20:00", "23:00", 30))
        schedule = run_scheduler(pool, ["a", "b"], slots, rotation_policy=RotationPolicy.ROUND_ROBIN_DOUBLE)
        assert [s.content_id for s in schedule] == ["a", "a", "b", "b", "a", "a"]

    def test_round_robin_double_turn_ends_when_show_runs_out(self):
        pool = ContentPool({"a": make_episodes("a", 1), "b": make_episodes("b", 4)})
        slots = list(SlotSequence("20:00", "22:00", 30))
        schedule = run_scheduler(pool, ["a", "b"], slots, rotation_policy="round_robin_double")
        assert [s.content_id for s in schedule] == ["a", "b", "b", "b"]

    def test_random_is_reproducible_with_seed(self):
        def build():
            return ContentPool({"a": make_episodes("a", 5), "b": make_episodes("b", 5)})

        slots = list(SlotSequence("18:00", "23:00", 30))
        first = run_scheduler(build(), ["a", "b"], slots, rng=random.Random(99), rotation_policy="random")
        second = run_scheduler(build(), ["a", "b"], slots, rng=random.Random(99), rotation_policy="random")

        assert first == second
        assert len(first) == 10
        assert {s.content_id for s in first} == {"a", "b"}


class TestPlacementInvariants:
    """Tests for overlap, movie and cursor guarantees."""

    def test_placements_never_overlap(self):
        pool = ContentPool(
            {"a": make_episodes("a", 10, duration=45)},
            {"m": MovieEntry("m", 95)},
        )
        slots = list(SlotSequence("18:00", "00:00", 30))
        schedule = run_scheduler(pool, ["m", "a"], slots, end=date(2024, 1, 3))

        for previous, current in zip(schedule, schedule[1:]):
            if previous.scheduled_time.date() == current.scheduled_time.date():
                assert current.scheduled_time >= previous.end_time

    def test_overlapping_slot_is_skipped(self):
        events = EventLog()
        pool = ContentPool({"a": make_episodes("a", 3, duration=45)})
        schedule = run_scheduler(pool, ["a"], ["20:00", "20:30", "21:00", "21:30"], events=events)

        assert [s.scheduled_time for s in schedule] == [utc(2024, 1, 1, 20, 0), utc(2024, 1, 1, 21, 0)]
        assert [e.data["slot"] for e in events.named("schedule.overlap_skip")] == ["20:30", "21:30"]

    def test_movie_placed_at_most_once(self):
        pool = ContentPool({"a": make_episodes("a", 20)}, {"m": MovieEntry("m", 60)})
        slots = list(SlotSequence("19:00", "23:00", 30))
        schedule = run_scheduler(pool, ["m", "a"], slots, end=date(2024, 1, 4))

        movies = [s for s in schedule if s.content_id == "m"]
        assert len(movies) == 1
        assert movies[0].season is None and movies[0].episode is None

    def test_movie_without_duration_uses_default(self):
        pool = ContentPool({}, {"m": MovieEntry("m", None)})
        schedule = run_scheduler(pool, ["m"], list(SlotSequence("18:00", "22:00", 30)))
        assert schedule[0].duration == 120

    def test_cursor_continues_across_days(self):
        pool = ContentPool({"a": make_episodes("a", 4)})
        schedule = run_scheduler(pool, ["a"], ["20:00", "20:30"], end=date(2024, 1, 2))

        assert [s.episode for s in schedule] == [1, 2, 3, 4]
        assert [s.scheduled_time.date() for s in schedule] == [
            date(2024, 1, 1), date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 2),
        ]

    def test_invalid_duration_retries_same_slot(self):
        events = EventLog()
        pool = ContentPool({"a": [
            EpisodeRecord(content_id="a", season=1, episode_number=1, duration=0),
            EpisodeRecord(content_id="a", season=1, episode_number=2, duration=30),
        ]})
        schedule = run_scheduler(pool, ["a"], ["20:00", "20:30"], events=events)

        assert [(s.episode, s.scheduled_time) for s in schedule] == [(2, utc(2024, 1, 1, 20, 0))]
        assert len(events.named("schedule.skipped_invalid_duration")) == 1

    def test_exhaustion_ends_the_day(self):
        events = EventLog()
        pool = ContentPool({"a": make_episodes("a", 1)})
        schedule = run_scheduler(pool, ["a"], list(SlotSequence("20:00", "22:00", 30)), events=events)

        assert len(schedule) == 1
        assert len(events.named("schedule.exhausted")) == 1

    def test_offset_applied_to_instants(self):
        pool = ContentPool({"a": make_episodes("a", 1)})
        schedule = run_scheduler(pool, ["a"], ["20:00"], timezone_offset="-05:00")

        assert schedule[0].scheduled_time == utc(2024, 1, 2, 1, 0)
        assert schedule[0].timezone_offset == "-05:00"


class TestEmptyPool:
    """Tests for runs with nothing to schedule."""

    def test_empty_pool_returns_nothing(self):
        events = EventLog()
        schedule = run_scheduler(ContentPool(), ["a"], ["20:00"], events=events)
        assert schedule == []
        assert len(events.named("schedule.empty_pool")) == 1

    def test_summary_emitted_per_content(self):
        events = EventLog()
        pool = ContentPool({"a": make_episodes("a", 2)}, {"m": MovieEntry("m", 60)})
        run_scheduler(pool, ["a", "m"], list(SlotSequence("18:00", "22:00", 30)), events=events)

        summary = {e.data["content_id"]: e.data for e in events.named("schedule.summary")}
        assert summary["a"]["available"] == 2
        assert summary["a"]["scheduled"] == 2
        assert summary["m"]["scheduled"] == 1
