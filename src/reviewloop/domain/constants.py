"""Centralized constants for the review scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Time ----------
DAY_MS = 86_400_000

# ---------- Learning phase ----------
GRADUATION_SEEN_COUNT = 10

# ---------- SM-2 ----------
DEFAULT_EASE = 2.5
MIN_EASE = 1.3
EASY_BONUS = 1.15
GOOD_SECOND_INTERVAL = 6  # days

# ---------- Selection ----------
LAPSE_WEIGHT = 0.5

# ---------- Generation ----------
GENERATION_COOLDOWN_SECONDS = 15.0
BATCH_SIZE = 5
MIN_CODE_CARDS = 2
MIN_CODE_BLOCKS = 4
PROBLEM_URL_MARKER = "leetcode.com/problems/"
MAX_PROMPT_UNITS = 12

# ---------- Persistence ----------
STATE_SYNC_DELAY = 1.2  # seconds
CARD_SYNC_DELAY = 1.8  # seconds
MAX_REVIEW_CARDS = 200
RETENTION_DAYS = 90
REQUEST_TIMEOUT = 30.0
