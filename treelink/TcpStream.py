import select
import socket

from .Endpoint import *
from .Stream import *

class TcpStream(Stream):
    """TCP stream class providing a bidirectional link to a networked device.

    This class connects to a single fixed endpoint using the standard socket
    module as the low-level driver. All lifecycle handling, continuous receive
    and notifications come from the `Stream` base class; this class only
    supplies the socket operations underneath them."""

    def __init__(self, endpoint=None, connect_timeout=DEFAULT_CONNECT_TIMEOUT, poll_interval=DEFAULT_POLL_INTERVAL):
        """Initializes a TCP stream instance.

        :param endpoint: Remote device address, as an Endpoint, a (host, port)
            tuple or a "host:port" string; the default device address is used
            if omitted
        :type endpoint: Endpoint

        :param connect_timeout: Longest time in seconds to wait for a
            connection to be established
        :type connect_timeout: float

        :param poll_interval: Longest time in seconds the receive thread waits
            for data before checking whether it has been stopped
        :type poll_interval: float

        Nothing is connected until `connect()` is called."""

        super().__init__(poll_interval=poll_interval)

        # these attributes may be updated by the application
        self.connect_timeout = connect_timeout

        # these attributes should only be read externally, not written
        self.endpoint = Endpoint.coerce(endpoint)

    def __str__(self):
        """Generates the string representation of the TCP stream.

        :returns: String representation of the stream
        :rtype: str
        """

        return str(self.endpoint)

    def _open_handle(self):
        sock = socket.create_connection(self.endpoint.address, timeout=self.connect_timeout)

        # blocking from here on, the receive thread polls with select() instead
        sock.settimeout(None)
        return sock

    def _interrupt_handle(self, sock):
        try:
            # peer may already be gone, in which case there is nothing to shut down
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def _close_handle(self, sock):
        sock.close()

    def _write(self, sock, data):
        sock.sendall(data)
        return len(data)

    def _read_into(self, sock, view, size):
        return sock.recv_into(view, size)

    def _wait_readable(self, sock, timeout):
        readable, _, _ = select.select([sock], [], [], timeout)
        return bool(readable)
