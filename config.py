"""
Configuration constants for the monet latency monitor.
"""

# --- Target ---
DEFAULT_TARGET = "1.1.1.1"

# --- Sampling Rate Ladder ---
INTERVAL_LADDER_S = (0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0) # Fastest to slowest
RELAXED_INDEX = 3 # Ladder position taken once the window first fills (1s)

# --- Watchdog ---
WATCHDOG_GRACE_S = 20.0 # Time allowed for an echo reply before alarming

# --- Probe Engine ---
SEQUENCE_SPACE = 1 << 16 # ICMP sequence field width, numbers wrap after this
SESSION_ID_SPACE = 1 << 16 # ICMP identifier field width
RECV_TIMEOUT_S = 0.5 # Length of one sniff window before an expected read timeout
SESSION_JOIN_TIMEOUT_S = 3.0 # Wait for a stopped session thread, longer than the pinger's own receiver join
SCAPY_VERBOSITY = 0 # 0 for quiet, 1 for default

# --- Event Loop ---
EVENT_QUEUE_SIZE = 1024
EVENT_PUT_TIMEOUT_S = 1.0 # Engine and timer threads give up (and log) after this long on a full queue
REFRESH_S = 0.25 # Max wait for an event before checking the terminal size
DIAGNOSTIC_HISTORY = 5 # Diagnostics kept on screen

# --- Display ---
DEFAULT_WIDTH = 80
DEFAULT_HEIGHT = 24

# --- Logging ---
LOG_FILE = "monet.log"
LOG_LEVEL = "INFO"
