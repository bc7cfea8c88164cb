import threading

class LinkListener:
    """Base listener class for link lifecycle and data notifications.

    Subclass this and override any of the `on_*` methods that your application
    cares about, then subscribe an instance to a stream. Every method here is a
    no-op, so only the interesting events need an implementation.

    Notifications other than `on_connected()` and `on_tx_data()` are delivered
    on the stream's receive thread, not on the thread that subscribed. Handlers
    should return quickly and must not block on UI work or long-held locks,
    since the next read is not issued until every listener has returned."""

    def on_connected(self, link):
        """Handles a successful connection.

        :param link: Stream which has just connected
        :type link: Stream
        """

        pass

    def on_disconnected(self, link):
        """Handles the end of a connection.

        :param link: Stream which has just been disconnected
        :type link: Stream

        This is triggered exactly once per connection, whether the connection
        ended by request, by the peer closing or resetting it, or because of a
        fatal receive error."""

        pass

    def on_rx_data(self, link, data, count):
        """Handles incoming data.

        :param link: Stream which received the data
        :type link: Stream

        :param data: View over the receive buffer holding the new data
        :type data: memoryview

        :param count: Number of bytes received
        :type count: int

        The view is released as soon as this method returns, because the same
        receive buffer is filled again on the next cycle. Copy the data out
        (e.g. `bytes(data)`) if it is needed later."""

        pass

    def on_tx_data(self, link, data):
        """Handles outgoing data just before it is written.

        :param link: Stream sending the data
        :type link: Stream

        :param data: Data about to be written
        :type data: bytes
        """

        pass

    def on_rx_error(self, link, error):
        """Handles a fatal receive error.

        :param link: Stream whose receive thread failed
        :type link: Stream

        :param error: Exception wrapping the original failure
        :type error: TreelinkReceiveException
        """

        pass

class FunctionListener(LinkListener):
    """Listener built from plain callables.

    Useful when a full listener subclass is overkill::

        stream.subscribe(FunctionListener(on_rx_data=handle_data))

    Each keyword must be one of the `LinkListener` method names, and each
    callable takes the same arguments as that method (without `self`)."""

    EVENTS = ("on_connected", "on_disconnected", "on_rx_data", "on_tx_data", "on_rx_error")

    def __init__(self, **callbacks):
        for name, callback in callbacks.items():
            if name not in FunctionListener.EVENTS:
                raise TypeError("unknown listener event %r" % name)
            if not callable(callback):
                raise TypeError("callback for %r is not callable" % name)
            setattr(self, name, callback)

class NotificationChannel:
    """Ordered fan-out of link notifications to subscribed listeners.

    Listeners are called synchronously, in subscription order, on whichever
    thread triggers the notification. Subscribing or unsubscribing from inside
    a handler is allowed and takes effect from the next notification."""

    def __init__(self):
        self._listeners = []
        self._lock = threading.Lock()

    @property
    def listeners(self):
        """Snapshot of the currently subscribed listeners.

        :rtype: list
        """

        with self._lock:
            return list(self._listeners)

    def subscribe(self, listener) -> bool:
        """Adds a listener.

        :param listener: Listener to receive future notifications
        :type listener: LinkListener

        :returns: False if the listener was already subscribed
        :rtype: bool
        """

        with self._lock:
            if listener in self._listeners:
                return False
            self._listeners.append(listener)
            return True

    def unsubscribe(self, listener) -> bool:
        """Removes a listener.

        :param listener: Previously subscribed listener
        :type listener: LinkListener

        :returns: False if the listener was not subscribed
        :rtype: bool
        """

        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
            return True

    def clear(self):
        with self._lock:
            self._listeners.clear()

    def notify_connected(self, link):
        for listener in self.listeners:
            listener.on_connected(link)

    def notify_disconnected(self, link):
        for listener in self.listeners:
            listener.on_disconnected(link)

    def notify_rx_data(self, link, data, count):
        for listener in self.listeners:
            listener.on_rx_data(link, data, count)

    def notify_tx_data(self, link, data):
        for listener in self.listeners:
            listener.on_tx_data(link, data)

    def notify_rx_error(self, link, error):
        for listener in self.listeners:
            listener.on_rx_error(link, error)
