class LinkState:
    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2

# returned by send() and receive() instead of raising when no transfer happened
TRANSFER_FAILED = -1

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 55555

# seconds
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_POLL_INTERVAL = 0.1

NO_ERROR = "No error"
