"""
Blocker Constants

Single source of truth for sizes, intervals and proof-of-work parameters.
Intervals are in seconds unless the name says otherwise.
"""

from typing import Final

# ==============================================================================
# HASHES AND LINKS
# ==============================================================================

HASH_SIZE: Final[int] = 32                      # BLAKE2b-256 digest
MERKLE_ROOT_SIZE: Final[int] = 32
LINK_RAW_SIZE: Final[int] = 34                  # bitfield(2) + merkle root(32)
LINK_BASE64_SIZE: Final[int] = 46
LINK_BASE32_SIZE: Final[int] = 55

# ==============================================================================
# BATCH PROPAGATION
# ==============================================================================

BATCH_SIZE: Final[int] = 100                    # Initial batch per daemon call
BATCH_SHRINK_DIVISOR: Final[int] = 10           # Shrink factor on content rejection

# ==============================================================================
# SCHEDULING
# ==============================================================================

SCAN_INTERVAL_SEC: Final[float] = 60.0
SCAN_INTERVAL_TESTING_SEC: Final[float] = 0.1
SCAN_BACK_WINDOW_SEC: Final[int] = 3600         # Overlap re-scanned each cycle
SLEEP_ON_ERR_STEP_SEC: Final[float] = 10.0
SLEEP_ON_ERR_STEPS: Final[int] = 6              # Backoff caps at step * steps
RETRY_INTERVAL_SEC: Final[float] = 1800.0
RETRY_INTERVAL_TESTING_SEC: Final[float] = 0.1

SYNC_INTERVAL_SEC: Final[float] = 4 * 3600.0
SYNC_INTERVAL_TESTING_SEC: Final[float] = 60.0
SYNC_PAGE_LIMIT: Final[int] = 1000              # Max entries per peer page
SYNC_MAX_PAGES: Final[int] = 100

NANOS_PER_SECOND: Final[int] = 1_000_000_000

# ==============================================================================
# DAEMON / PEERS
# ==============================================================================

DAEMON_DEFAULT_URL: Final[str] = "http://sia:9980"
DAEMON_USER_AGENT: Final[str] = "Sia-Agent"
DAEMON_REQUEST_TIMEOUT_SEC: Final[float] = 30.0
DAEMON_BLOCK_TIMEOUT_PARAM: Final[int] = 30     # Server-side timeout query param
PEER_REQUEST_TIMEOUT_SEC: Final[float] = 30.0

# ==============================================================================
# PROOF OF WORK
# ==============================================================================

POW_VERSION_V1_NAME: Final[str] = "MySkyID-PoW-v1"
POW_IDENTITY_FIELD: Final[str] = "myskyid"      # JSON key of the identity key
POW_NONCE_SIZE: Final[int] = 8
POW_IDENTITY_SIZE: Final[int] = 32              # Ed25519 public key
POW_SIGNATURE_SIZE: Final[int] = 64
POW_TARGET_SIZE: Final[int] = 32
POW_SIGN_SALT: Final[bytes] = b"MYSKY_ID_VERIFICATION"
POW_WORK_IDENTIFIER: Final[bytes] = b"MySkyProof"

# Empirically tuned production target (~2^23 expected hashes).
POW_TARGET_STANDARD: Final[bytes] = bytes([
    0, 0, 2, 79, 134, 217, 6, 168, 28, 68, 106, 164, 207, 53, 55, 178,
    24, 81, 162, 117, 144, 30, 90, 200, 147, 120, 124, 181, 32, 216, 184, 223,
])
# Two leading zero bytes: ~65k hashes, fast enough for dev and CI.
POW_TARGET_TESTING: Final[bytes] = bytes([0, 0] + [255] * 30)

# ==============================================================================
# STORE
# ==============================================================================

DB_SCHEMA_VERSION: Final[int] = 1
DB_IN_CHUNK: Final[int] = 500                   # Max hashes per IN (...) clause
BLOCKED_LIST_DEFAULT_LIMIT: Final[int] = 1000

# ==============================================================================
# CACHE PURGE LIST
# ==============================================================================

PURGE_LIST_PATH: Final[str] = "/data/nginx/blocker/skylinks.txt"
PURGE_LOCK_PATH: Final[str] = "/data/nginx/blocker/lock"
PURGE_LOCK_ATTEMPTS: Final[int] = 3
PURGE_LOCK_RETRY_SEC: Final[float] = 1.0
