import logging
import threading

from .common import *
from .Exceptions import *
from .Listener import *

_logger = logging.getLogger(__name__)

class Stream:
    """Base stream class to manage a bidirectional link to a remote device.

    This class holds the connection lifecycle (disconnected, connecting,
    connected), the continuous receive thread, and the notification channel
    used to tell listeners about connections, disconnections and incoming
    data. It knows nothing about the bytes themselves; payloads are passed to
    listeners untouched.

    This class should not be used directly, but rather used as a base for child
    classes that use specific low-level communication drivers. As a minimum, a
    child class must implement the `_open_handle()`, `_close_handle()`,
    `_write()`, `_read_into()` and `_wait_readable()` methods.

    The connection handle is only ever opened, read and closed while holding
    the stream lock, so `disconnect()` from one thread can never close the
    handle in the middle of a read on the receive thread. Notifications are
    always dispatched outside of that lock."""

    def __init__(self, poll_interval=DEFAULT_POLL_INTERVAL):
        """Initializes a stream instance.

        :param poll_interval: Longest time in seconds the receive thread waits
            for data before checking whether it has been stopped
        :type poll_interval: float
        """

        # these attributes may be updated by the application
        self.poll_interval = poll_interval

        # these attributes should only be read externally, not written
        self.state = LinkState.DISCONNECTED
        self.notifications = NotificationChannel()
        self.is_running = False

        # these attributes are intended to be private
        self._handle = None
        self._lock = threading.RLock()
        self._write_lock = threading.RLock()
        self._last_error = None
        self._receive_armed = False
        self._receive_error = None
        self._monitor_thread = None
        self._running_thread_ident = 0
        self._stop_thread_ident_list = []

    def __str__(self):
        return "unidentified stream"

    @property
    def is_open(self):
        """Whether a connection is currently established.

        :rtype: bool
        """

        return self._handle is not None

    def subscribe(self, listener) -> bool:
        """Subscribes a listener to this stream's notifications.

        :param listener: Listener to add
        :type listener: LinkListener

        :returns: False if the listener was already subscribed
        :rtype: bool
        """

        return self.notifications.subscribe(listener)

    def unsubscribe(self, listener) -> bool:
        """Unsubscribes a listener from this stream's notifications.

        :param listener: Listener to remove
        :type listener: LinkListener

        :returns: False if the listener was not subscribed
        :rtype: bool
        """

        return self.notifications.unsubscribe(listener)

    def connect(self) -> bool:
        """Opens the connection.

        :returns: Status of connection attempt
        :rtype: bool

        Any transport error while connecting is caught and reported through
        the return value and `get_error_string()`; no notification is
        triggered in that case. On success, the connected notification is
        triggered before this method returns. Connecting an already connected
        stream does nothing and reports success."""

        with self._lock:
            if self._handle is not None:
                return True

            self.state = LinkState.CONNECTING
            _logger.debug("connecting to %s", self)
            handle = None
            try:
                handle = self._open_handle()
            except OSError as e:
                self._record_error(e)
                _logger.debug("connection to %s failed: %s", self, e)
            finally:
                if handle is None:
                    self.state = LinkState.DISCONNECTED
            if handle is None:
                return False

            self._handle = handle
            self._receive_armed = False
            self._receive_error = None
            self.state = LinkState.CONNECTED

        _logger.info("connected to %s", self)
        self.notifications.notify_connected(self)
        return True

    def disconnect(self) -> bool:
        """Closes the connection.

        :returns: Whether an open connection was closed
        :rtype: bool

        This stops the receive thread (if running), shuts the connection down
        and triggers the disconnected notification. If there is no connection,
        nothing happens."""

        self.stop_continuous_receive()
        if not self._release_handle():
            return False

        _logger.info("disconnected from %s", self)
        self.notifications.notify_disconnected(self)
        return True

    def send(self, data, length=None) -> int:
        """Writes data to the stream.

        :param data: Data buffer to be sent out to the stream
        :type data: bytes

        :param length: Number of bytes from the start of `data` to send, or
            None to send all of it
        :type length: int

        :returns: Number of bytes written, or `TRANSFER_FAILED`
        :rtype: int

        The write is synchronous and complete. If the stream is not connected,
        or the transport refuses the data, `TRANSFER_FAILED` is returned rather
        than raising so the caller can decide how much it cares."""

        data = bytes(data if length is None else data[:length])
        with self._lock:
            handle = self._handle
        if handle is None:
            self._last_error = "not connected"
            return TRANSFER_FAILED

        # trigger application callback
        self.notifications.notify_tx_data(self, data)

        # closing waits for this write, see _release_handle()
        with self._write_lock:
            if self._handle is not handle:
                self._last_error = "not connected"
                return TRANSFER_FAILED
            try:
                return self._write(handle, data)
            except OSError as e:
                self._record_error(e)
                _logger.debug("send to %s failed: %s", self, e)
                return TRANSFER_FAILED

    def receive(self, buffer, length=None) -> int:
        """Reads data from the stream once, blocking until some arrives.

        :param buffer: Writable buffer to read into
        :type buffer: bytearray

        :param length: Maximum number of bytes to read, or None to use the
            whole buffer
        :type length: int

        :returns: Number of bytes read (0 if the peer closed its side), or
            `TRANSFER_FAILED`
        :rtype: int

        This is not available while continuous receive is running, since both
        would compete for the same data. If the peer closed or reset the
        connection, the connection is closed here and the disconnected
        notification is triggered before returning."""

        view = self._writable_view(buffer, length)
        try:
            with self._lock:
                handle = self._handle
                if handle is None:
                    self._last_error = "not connected"
                    return TRANSFER_FAILED
                if self.is_running:
                    self._last_error = "continuous receive is active"
                    return TRANSFER_FAILED

            try:
                count = self._read_into(handle, view, len(view))
            except OSError as e:
                _logger.debug("receive from %s failed: %s", self, e)
                if self._is_peer_reset(e):
                    self._on_connection_end(handle, e)
                else:
                    self._record_error(e)
                return TRANSFER_FAILED
        finally:
            view.release()

        if count == 0:
            self._on_connection_end(handle, "connection closed by peer")
        return count

    def start_continuous_receive(self, buffer, capacity=None) -> bool:
        """Starts receiving data on a dedicated thread.

        :param buffer: Writable buffer which every receive cycle fills
        :type buffer: bytearray

        :param capacity: Maximum number of bytes per receive cycle, or None to
            use the whole buffer
        :type capacity: int

        :returns: Whether the receive thread was started
        :rtype: bool

        The thread keeps reading until the connection ends or the stream is
        stopped, handing each chunk to the listeners' `on_rx_data()` method.
        The same buffer is reused for every chunk. This can only be done once
        per connection; on a stream which is not connected it does nothing."""

        with self._lock:
            if self._handle is None:
                _logger.debug("not arming receive on %s, not connected", self)
                return False
            if self._receive_armed:
                _logger.warning("continuous receive already armed on %s", self)
                return False

            view = self._writable_view(buffer, capacity)
            self._receive_armed = True
            self._receive_error = None
            self._monitor_thread = threading.Thread(target=self._watch_data, args=(view,))
            self._monitor_thread.name = "treelink-rx %s" % self
            self._monitor_thread.daemon = True
            self.is_running = True
            self._monitor_thread.start()
            self._running_thread_ident = self._monitor_thread.ident

        _logger.debug("armed continuous receive on %s (%d bytes)", self, len(view))
        return True

    def stop_continuous_receive(self) -> bool:
        """Stops the receive thread without closing the connection.

        :returns: Whether a running receive thread was told to stop
        :rtype: bool

        The thread notices the request after its current wait, which takes at
        most `poll_interval` seconds, and exits without triggering any
        notification. Use `join()` to wait for it."""

        with self._lock:
            if not self.is_running:
                return False
            self._stop_thread_ident_list.append(self._running_thread_ident)
            self._running_thread_ident = 0
            self.is_running = False

        _logger.debug("stopping continuous receive on %s", self)
        return True

    def join(self, timeout=None) -> bool:
        """Waits for the receive thread to finish.

        :param timeout: Maximum time to wait in seconds, or None to wait as
            long as it takes
        :type timeout: float

        :returns: Whether the receive thread has finished (also True if it
            was never started)
        :rtype: bool

        If the thread ended because of a fatal receive error, that error is
        raised here as a `TreelinkReceiveException`."""

        thread = self._monitor_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

        finished = thread is None or not thread.is_alive()
        if finished and self._receive_error is not None:
            raise self._receive_error
        return finished

    def get_error_string(self) -> str:
        """Describes the most recent failure.

        :returns: Human-readable description, never None
        :rtype: str
        """

        return self._last_error or NO_ERROR

    def _open_handle(self):
        """Opens the low-level connection.

        :returns: Handle of the new connection

        This must raise `OSError` (or a subclass) on failure.

        Since no driver is inherent in the base class, you *must* override this
        method in child classes so that a suitable action occurs."""

        # child class must implement
        raise TreelinkHalException("Child class has not implemented _open_handle() method, cannot use base class stub")

    def _interrupt_handle(self, handle):
        """Makes blocked operations on a low-level connection return.

        :param handle: Handle returned by `_open_handle()`

        This is called just before `_close_handle()`, while a write on another
        thread may still be using the handle. The default does nothing.

        Child classes *may* override this if their driver can wake up pending
        reads and writes (e.g. a socket shutdown)."""

        pass

    def _close_handle(self, handle):
        """Closes a low-level connection.

        :param handle: Handle returned by `_open_handle()`

        No write is in progress when this is called. Errors from an already
        broken connection should be ignored here.

        Since no driver is inherent in the base class, you *must* override this
        method in child classes so that a suitable action occurs."""

        # child class must implement
        raise TreelinkHalException("Child class has not implemented _close_handle() method, cannot use base class stub")

    def _write(self, handle, data):
        """Writes all of the data to a low-level connection.

        :returns: Number of bytes written
        :rtype: int

        Since no driver is inherent in the base class, you *must* override this
        method in child classes so that a suitable action occurs."""

        # child class must implement
        raise TreelinkHalException("Child class has not implemented _write() method, cannot use base class stub")

    def _read_into(self, handle, view, size):
        """Reads up to `size` bytes from a low-level connection into `view`.

        :returns: Number of bytes read, 0 if the peer closed the connection
        :rtype: int

        Since no driver is inherent in the base class, you *must* override this
        method in child classes so that a suitable action occurs."""

        # child class must implement
        raise TreelinkHalException("Child class has not implemented _read_into() method, cannot use base class stub")

    def _wait_readable(self, handle, timeout):
        """Waits until a low-level connection has data (or an error) to read.

        :returns: False if the timeout elapsed first
        :rtype: bool

        This is the only place the receive thread blocks.

        Since no driver is inherent in the base class, you *must* override this
        method in child classes so that a suitable action occurs."""

        # child class must implement
        raise TreelinkHalException("Child class has not implemented _wait_readable() method, cannot use base class stub")

    def _is_peer_reset(self, error):
        """Decides whether a receive error means the peer reset the connection.

        :param error: Exception raised while receiving
        :type error: Exception

        :rtype: bool

        Child classes *may* override this if their driver reports resets in
        some other way."""

        return isinstance(error, ConnectionResetError)

    def _watch_data(self, view):
        """Watches the stream for incoming data.

        :param view: Writable view over the receive buffer
        :type view: memoryview

        Note that this method is not intended for application use; rather, it
        is executed in a separate thread by `start_continuous_receive()` so
        that the application never blocks on incoming data. Each chunk of data
        is passed to `_on_rx_data()` and the next read is only issued once that
        returns.

        A read of zero bytes (peer closed) or a connection reset ends the
        connection with the normal disconnected notification. Anything else is
        fatal and handed to `_on_rx_error()`. A stopped thread exits quietly,
        whatever state the connection was left in."""

        ident = threading.get_ident()
        capacity = len(view)
        handle = None
        cycles = 0
        end_reason = None
        failure = None
        try:
            try:
                while ident not in self._stop_thread_ident_list:
                    with self._lock:
                        handle = self._handle
                    if handle is None:
                        break

                    if not self._wait_readable(handle, self.poll_interval):
                        continue

                    with self._lock:
                        if ident in self._stop_thread_ident_list or self._handle is not handle:
                            break
                        count = self._read_into(handle, view, capacity)

                    if count == 0:
                        end_reason = "connection closed by peer"
                        break

                    cycles += 1
                    self._on_rx_data(view, count)

            except Exception as e:
                if ident in self._stop_thread_ident_list:
                    # disconnect() closed the connection underneath the read
                    _logger.debug("receive on %s ended after stop: %s", self, e)
                elif self._is_peer_reset(e):
                    end_reason = e
                else:
                    failure = e

            if end_reason is not None:
                try:
                    self._on_connection_end(handle, end_reason)
                except Exception as e:
                    # a failing disconnection listener is as fatal as any other
                    failure = e

            if failure is not None:
                self._on_rx_error(handle, failure)

        finally:
            view.release()
            _logger.debug("receive thread for %s finished after %d cycles", self, cycles)

            # remove ID from "terminate" list since we're about to end execution
            with self._lock:
                if ident in self._stop_thread_ident_list:
                    self._stop_thread_ident_list.remove(ident)
                if self._running_thread_ident == ident:
                    self._running_thread_ident = 0
                    self.is_running = False

    def _on_rx_data(self, view, count):
        """Handles incoming data.

        :param view: Writable view over the whole receive buffer
        :type view: memoryview

        :param count: Number of bytes just received
        :type count: int

        Listeners get a view of exactly the received bytes, which is released
        right after they have all returned so nobody can hold on to buffer
        contents that the next cycle will overwrite."""

        data = view[:count]
        try:
            self.notifications.notify_rx_data(self, data, count)
        finally:
            data.release()

    def _on_connection_end(self, handle, reason):
        """Handles the peer closing or resetting the connection.

        :param handle: Handle the receive thread was reading from

        :param reason: Exception or text describing why the connection ended
        """

        self._record_error(reason)
        if self._release_handle(handle):
            _logger.info("connection to %s ended: %s", self, reason)
            self.notifications.notify_disconnected(self)

    def _on_rx_error(self, handle, error):
        """Handles a fatal receive error.

        :param handle: Handle the receive thread was reading from

        :param error: Exception that stopped the receive thread
        :type error: Exception

        The connection is closed, the error is kept for `join()` to raise in
        the owning thread, and listeners are told about both the error and the
        disconnection. A listener failing here is added to the kept error's
        `listener_errors` and does not stop the other notification."""

        self._record_error(error)
        failure = TreelinkReceiveException("receive from %s failed: %s" % (self, self.get_error_string()))
        failure.__cause__ = error
        self._receive_error = failure
        _logger.error("continuous receive on %s failed", self, exc_info=error)

        released = self._release_handle(handle)
        self._notify_after_failure(failure, self.notifications.notify_rx_error, failure)
        if released:
            self._notify_after_failure(failure, self.notifications.notify_disconnected)

    def _notify_after_failure(self, failure, notify, *args):
        """Triggers a notification on behalf of a failed receive thread.

        :param failure: Error the receive thread is ending with
        :type failure: TreelinkReceiveException

        :param notify: Bound `NotificationChannel.notify_*` method
        """

        try:
            notify(self, *args)
        except Exception as e:
            failure.listener_errors.append(e)
            _logger.error("listener failed while handling receive error on %s", self, exc_info=e)

    def _release_handle(self, expected=None) -> bool:
        """Closes and forgets the current connection handle.

        :param expected: Only release the handle if it is still this one
            (used by the receive thread), or None for any handle

        :returns: Whether this call closed the handle
        :rtype: bool

        Whoever gets True here is the one that triggers the disconnected
        notification, so it fires once per connection. The handle is
        interrupted first so a write in progress fails quickly, and only
        closed once that write has let go of it."""

        with self._lock:
            handle = self._handle
            if handle is None or (expected is not None and handle is not expected):
                return False
            self._handle = None
            self.state = LinkState.DISCONNECTED
            self._interrupt_handle(handle)

        with self._write_lock:
            self._close_handle(handle)
        return True

    def _record_error(self, error):
        """Remembers an exception or message for `get_error_string()`."""

        self._last_error = str(error) or error.__class__.__name__

    @staticmethod
    def _writable_view(buffer, length):
        """Returns a flat byte view of the first `length` bytes of a writable buffer."""

        view = memoryview(buffer)
        if view.readonly:
            view.release()
            raise TypeError("receive buffer must be writable")
        view = view.cast("B")

        if length is None:
            length = len(view)
        if not 0 < length <= len(view):
            size = len(view)
            view.release()
            raise ValueError("receive length must be between 1 and %d, not %d" % (size, length))
        return view[:length]
