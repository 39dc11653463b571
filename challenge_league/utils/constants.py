"""
Constants used across the prompt phase scheduler.
"""

import os

# Execution slot: phases only advance when the cron runs at this UTC hour
EXECUTION_HOUR_UTC = int(os.getenv("PHASE_EXECUTION_HOUR_UTC", "19"))  # 7 PM UTC

# Default league timing (used when a league has no explicit settings)
DEFAULT_SUBMISSION_DAYS = 7
DEFAULT_VOTING_DAYS = 2
DEFAULT_VOTES_PER_PLAYER = 3

# 2-hour reminder runs this many hours before the execution slot
TWO_HOUR_WARNING_LEAD_HOURS = 2
# Tolerance when matching a phase end against today's slot
TWO_HOUR_WARNING_TOLERANCE_MINUTES = int(os.getenv("TWO_HOUR_WARNING_TOLERANCE_MINUTES", "60"))

# Phases this short (in days) never get a 24-hour warning
SHORT_PHASE_MAX_DAYS = 1

# Submission photos are deleted this many days after the prompt completes
PHOTO_RETENTION_DAYS = int(os.getenv("PHOTO_RETENTION_DAYS", "7"))

# Redis run-lock keys for cron passes
PROMPT_CYCLE_LOCK_KEY = "challenge_league:lock:prompt_cycle"
TWO_HOUR_REMINDER_LOCK_KEY = "challenge_league:lock:two_hour_reminder"
SCHEDULER_LOCK_TTL_SECONDS = int(os.getenv("SCHEDULER_LOCK_TTL_SECONDS", "600"))
