"""
Constants for the tsume generator.
"""

# Wild Cat Shogi start position (3 files x 5 ranks), Black (sente) to move
STARTING_SFEN = "bkr/p1p/3/P1P/RKB b - 1"
VARIANT_NAME = "wildcatshogi"

# Oracle executable and the variant definition it loads
ENGINE_COMMAND = "fairy-stockfish"
VARIANTS_INI_PATH = "variants.ini"

# Simulation limits
MAX_MOVES = 300
MULTIPV_K = 5
SEARCH_TIME_MS = 10
MAX_ATTEMPTS = 10
REPETITION_LIMIT = 4

# A resign without any PV is retried once with a longer budget
RESIGN_RETRY_FACTOR = 5

# Protocol timing
SEARCH_GRACE_MS = 2000  # added to every search budget before timing out
STARTUP_TIMEOUT_S = 10.0
STARTUP_MAX_LINES = 500  # handshake lines tolerated before giving up
SHUTDOWN_TIMEOUT_S = 2.0

# Mate scores are folded into centipawns with this magnitude
MATE_SCORE = 10000

# Output / orchestration defaults
DEFAULT_OUTPUT = "results.sfen"
DEFAULT_COUNT = 1000
DEFAULT_WORKERS = 16
