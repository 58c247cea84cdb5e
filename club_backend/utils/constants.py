"""
Constants shared across the roster services.
"""

# Ranking bounds for singles/doubles rankings
MIN_RANKING = 0
MAX_RANKING = 5000

# Lineup positions in display order. Every hydrated lineup carries all of them.
LINEUP_POSITIONS = (
    "men_singles_1",
    "men_singles_2",
    "men_singles_3",
    "women_singles",
    "mens_doubles_1",
    "mens_doubles_2",
    "women_doubles",
    "mixed_doubles",
)

PREFERRED_POSITIONS = ("singles", "doubles", "mixed-doubles")

# Only these roles may hold a Player profile
PLAYER_ELIGIBLE_ROLES = ("admin", "member", "guest_player")

# Seconds a transaction capability probe result stays valid
DEFAULT_TRANSACTION_PROBE_TTL_SECONDS = 5.0
