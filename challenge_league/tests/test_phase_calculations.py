"""
Tests for phase_calculations — phase end times, expiry and warning checks.
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from challenge_league.database.models import PromptStatus
from challenge_league.services.phase_calculations import (
    DEFAULT_SETTINGS,
    LeagueSettings,
    get_next_phase,
    get_phase_end_time,
    get_realistic_phase_end_time,
    get_time_until_phase_end,
    is_ending_at_next_slot,
    is_phase_expired,
    is_submission_window_open,
    phase_duration_days,
    should_suppress_24h_warning,
    will_expire_in_next_slot,
)
from challenge_league.services import phase_clock
from challenge_league.services.phase_clock import slot_at_or_after
from conftest import utc


def make_prompt(status=PromptStatus.ACTIVE, phase_started_at=None):
    return SimpleNamespace(status=status, phase_started_at=phase_started_at)


SLOT = utc(2026, 1, 21, 19, 0)
SETTINGS = LeagueSettings(submission_days=7, voting_days=2, votes_per_player=3)


class TestPhaseEndTime:
    """Tests for phase_duration_days() and get_phase_end_time()."""

    def test_active_uses_submission_days(self):
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        assert get_phase_end_time(prompt, SETTINGS) == SLOT + timedelta(days=7)

    def test_voting_uses_voting_days(self):
        prompt = make_prompt(PromptStatus.VOTING, SLOT)
        assert get_phase_end_time(prompt, SETTINGS) == SLOT + timedelta(days=2)

    @pytest.mark.parametrize("status", [PromptStatus.SCHEDULED, PromptStatus.COMPLETED])
    def test_no_end_time_outside_in_flight_phases(self, status):
        assert get_phase_end_time(make_prompt(status, SLOT), SETTINGS) is None
        assert phase_duration_days(status, SETTINGS) is None

    def test_no_end_time_without_phase_start(self):
        assert get_phase_end_time(make_prompt(PromptStatus.ACTIVE, None), SETTINGS) is None

    def test_defaults_when_settings_omitted(self):
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        expected = SLOT + timedelta(days=DEFAULT_SETTINGS.submission_days)
        assert get_phase_end_time(prompt) == expected

    def test_string_status_accepted(self):
        assert phase_duration_days("VOTING", SETTINGS) == 2


class TestExpiry:
    """Tests for is_phase_expired() and is_submission_window_open()."""

    def test_not_expired_before_end(self):
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        assert not is_phase_expired(prompt, SETTINGS, now=SLOT + timedelta(days=6, hours=23))

    def test_expired_exactly_at_end(self):
        """Expiry is inclusive so the cron at the end slot advances the phase."""
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        assert is_phase_expired(prompt, SETTINGS, now=SLOT + timedelta(days=7))

    def test_never_expires_without_end_time(self):
        assert not is_phase_expired(make_prompt(PromptStatus.SCHEDULED, None), SETTINGS, now=SLOT)

    def test_submission_window(self):
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        assert is_submission_window_open(prompt, SETTINGS, now=SLOT + timedelta(days=1))
        assert not is_submission_window_open(prompt, SETTINGS, now=SLOT + timedelta(days=8))
        voting = make_prompt(PromptStatus.VOTING, SLOT)
        assert not is_submission_window_open(voting, SETTINGS, now=SLOT)


class TestRealisticEndTime:
    """Tests for get_realistic_phase_end_time()."""

    @pytest.mark.parametrize(
        "started_at",
        [
            utc(2026, 1, 21, 19, 0),
            utc(2026, 1, 21, 3, 17),
            utc(2026, 1, 21, 19, 0, 1),
            utc(2026, 1, 21, 23, 59, 59),
        ],
    )
    def test_always_on_slot_boundary(self, started_at):
        prompt = make_prompt(PromptStatus.ACTIVE, started_at)
        end_time = get_realistic_phase_end_time(prompt, SETTINGS)
        assert slot_at_or_after(end_time) == end_time

    def test_off_slot_start_snaps_forward(self):
        """A phase started mid-afternoon only counts from that evening's slot."""
        prompt = make_prompt(PromptStatus.VOTING, utc(2026, 1, 21, 14, 30))
        assert get_realistic_phase_end_time(prompt, SETTINGS) == utc(2026, 1, 23, 19, 0)

    def test_on_slot_matches_nominal(self):
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        assert get_realistic_phase_end_time(prompt, SETTINGS) == get_phase_end_time(prompt, SETTINGS)

    def test_none_without_phase_start(self):
        assert get_realistic_phase_end_time(make_prompt(PromptStatus.ACTIVE, None), SETTINGS) is None


class TestWarningChecks:
    """Tests for the 24-hour and 2-hour warning predicates."""

    def test_expires_in_next_slot(self):
        """A 2-day voting phase started at T ends at the slot after T+1 day."""
        prompt = make_prompt(PromptStatus.VOTING, SLOT)
        assert will_expire_in_next_slot(prompt, SETTINGS, now=SLOT + timedelta(days=1, minutes=5))

    def test_not_expiring_in_next_slot(self):
        prompt = make_prompt(PromptStatus.VOTING, SLOT)
        assert not will_expire_in_next_slot(prompt, SETTINGS, now=SLOT + timedelta(minutes=5))

    def test_ending_at_next_slot_within_tolerance(self):
        """Checked at 17:00 on the end day, the phase ends at the 19:00 slot that follows."""
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        now = utc(2026, 1, 28, 17, 0)
        assert is_ending_at_next_slot(prompt, SETTINGS, now=now)

    def test_ending_a_day_later_does_not_match(self):
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        now = utc(2026, 1, 27, 17, 0)
        assert not is_ending_at_next_slot(prompt, SETTINGS, now=now)

    def test_tolerance_window_edges(self):
        """An end time exactly one tolerance away from the slot is outside the window."""
        off_slot = make_prompt(PromptStatus.ACTIVE, utc(2026, 1, 21, 18, 0))
        now = utc(2026, 1, 28, 17, 0)
        assert not is_ending_at_next_slot(off_slot, SETTINGS, now=now)
        near_slot = make_prompt(PromptStatus.ACTIVE, utc(2026, 1, 21, 18, 30))
        assert is_ending_at_next_slot(near_slot, SETTINGS, now=now)

    def test_custom_tolerance(self):
        prompt = make_prompt(PromptStatus.ACTIVE, utc(2026, 1, 21, 18, 0))
        now = utc(2026, 1, 28, 17, 0)
        assert is_ending_at_next_slot(prompt, SETTINGS, now=now, tolerance=timedelta(hours=2))

    def test_early_slot_hour_checked_the_evening_before(self, monkeypatch):
        """With a 01:00 slot the 2-hour check runs at 23:00 the previous UTC day."""
        monkeypatch.setattr(phase_clock, "EXECUTION_HOUR_UTC", 1)
        prompt = make_prompt(PromptStatus.ACTIVE, utc(2026, 1, 15, 1, 0))
        assert is_ending_at_next_slot(prompt, SETTINGS, now=utc(2026, 1, 21, 23, 0))
        assert not is_ending_at_next_slot(prompt, SETTINGS, now=utc(2026, 1, 20, 23, 0))

    def test_late_run_after_slot_does_not_match(self):
        """Once the slot has passed the phase is due for transition, not a reminder."""
        prompt = make_prompt(PromptStatus.ACTIVE, SLOT)
        assert not is_ending_at_next_slot(prompt, SETTINGS, now=utc(2026, 1, 28, 19, 30))

    @pytest.mark.parametrize(
        "settings,status,expected",
        [
            (LeagueSettings(submission_days=1, voting_days=2), PromptStatus.ACTIVE, True),
            (LeagueSettings(submission_days=7, voting_days=1), PromptStatus.VOTING, True),
            (LeagueSettings(submission_days=7, voting_days=2), PromptStatus.VOTING, False),
            (LeagueSettings(submission_days=2, voting_days=2), PromptStatus.ACTIVE, False),
            (LeagueSettings(submission_days=1, voting_days=1), PromptStatus.SCHEDULED, False),
        ],
    )
    def test_short_phases_suppress_24h_warning(self, settings, status, expected):
        assert should_suppress_24h_warning(status, settings) is expected


class TestNextPhase:
    """Tests for get_next_phase()."""

    def test_ordering(self):
        assert get_next_phase(PromptStatus.SCHEDULED) == PromptStatus.ACTIVE
        assert get_next_phase(PromptStatus.ACTIVE) == PromptStatus.VOTING
        assert get_next_phase(PromptStatus.VOTING) == PromptStatus.COMPLETED

    def test_completed_is_absorbing(self):
        assert get_next_phase(PromptStatus.COMPLETED) == PromptStatus.COMPLETED
        assert get_next_phase("COMPLETED") == PromptStatus.COMPLETED


class TestTimeUntilPhaseEnd:
    """Tests for get_time_until_phase_end()."""

    def test_breakdown(self):
        prompt = make_prompt(PromptStatus.VOTING, SLOT)
        remaining = get_time_until_phase_end(prompt, SETTINGS, now=utc(2026, 1, 22, 16, 30))
        assert remaining == {"days": 1, "hours": 2, "minutes": 30, "is_expired": False}

    def test_expired(self):
        prompt = make_prompt(PromptStatus.VOTING, SLOT)
        remaining = get_time_until_phase_end(prompt, SETTINGS, now=utc(2026, 1, 24, 0, 0))
        assert remaining["is_expired"] is True
        assert remaining["days"] == remaining["hours"] == remaining["minutes"] == 0
