"""Centralized constants for the mneme scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Forgetting curve ----------
# R(t, S) = (1 + FACTOR * t / S) ** DECAY, so that R(S, S) == 0.9
FACTOR = 19 / 81
DECAY = -0.5
DEFAULT_DESIRED_RETENTION = 0.9

MIN_STABILITY = 0.01  # days
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0

# ---------- Parameter vector ----------
PARAMETER_COUNT = 17

DEFAULT_WEIGHTS = (
    0.4872,  # w0  initial stability: Again
    1.4003,  # w1  initial stability: Hard
    3.7145,  # w2  initial stability: Good
    13.8206,  # w3  initial stability: Easy
    5.1618,  # w4  initial difficulty for Good (neutral baseline)
    1.2298,  # w5  difficulty impact of the first rating
    0.8975,  # w6  difficulty impact of later ratings
    0.031,  # w7  difficulty decay (mean reversion)
    1.6474,  # w8  success bonus
    0.1367,  # w9  stability saturation
    1.0461,  # w10 stability factor (retrievability gain)
    2.1072,  # w11 lapse scale
    0.0793,  # w12 lapse difficulty exponent
    0.3246,  # w13 lapse stability exponent
    1.587,  # w14 lapse retrievability factor
    0.2272,  # w15 hard penalty
    2.8755,  # w16 easy bonus
)

WEIGHT_BOUNDS = (
    (0.01, 100.0),
    (0.01, 100.0),
    (0.01, 100.0),
    (0.01, 100.0),
    (1.0, 10.0),
    (0.001, 4.0),
    (0.001, 4.0),
    (0.001, 0.75),
    (0.0, 4.5),
    (0.0, 0.8),
    (0.001, 3.5),
    (0.001, 5.0),
    (0.001, 0.25),
    (0.001, 0.9),
    (0.0, 4.0),
    (0.0, 1.0),
    (1.0, 6.0),
)

# ---------- Learner scheduling settings ----------
DEFAULT_LEARNING_STEPS = (1.0, 10.0)  # minutes
DEFAULT_RELEARNING_STEPS = (10.0,)  # minutes
GRADUATING_INTERVAL_DAYS = 1
EASY_INTERVAL_DAYS = 4
MINIMUM_INTERVAL_DAYS = 1
MAXIMUM_INTERVAL_DAYS = 36500
RELEARNING_STABILITY_PENALTY = 0.5
DESIRED_RETENTION_BOUNDS = (0.7, 0.99)
RELEARNING_PENALTY_BOUNDS = (0.1, 1.0)

# ---------- Optimization ----------
MIN_REVIEWS_FOR_OPTIMIZATION = 50
MIN_PREDICTION_SAMPLES = 10
OPTIMIZATION_MILESTONES = (100, 250, 500, 1000, 2000)
STALE_AFTER_DAYS = 30
REVIEW_WINDOW = 500
FULL_CONFIDENCE_REVIEWS = 200
CONSERVATIVE_SCALE = 0.5
MAX_PARAM_CHANGE = 0.1
NEXT_MILESTONE_STEP = 500

# ---------- Batch optimization ----------
BATCH_SIZE = 10

# ---------- Effectiveness report ----------
KEY_DIFFERENCE_PERCENT = 5.0  # weights further than this from default are reported
PERSONALIZATION_THRESHOLD = 0.1  # relative error reduction that favors a recommendation
EFFECTIVENESS_WEIGHTS = {
    "success": 0.3,
    "retention": 0.25,
    "efficiency": 0.2,
    "consistency": 0.15,
    "accuracy": 0.1,
}
EFFICIENCY_FOR_FULL_SCORE = 5.0  # mean stability gain (days) counted as fully efficient
