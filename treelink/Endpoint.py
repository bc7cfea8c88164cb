from dataclasses import dataclass

from .common import *

@dataclass(frozen=True)
class Endpoint:
    """Network address of a remote device.

    An endpoint is a fixed (host, port) pair. It is resolved by the transport
    when connecting, not when the endpoint is created."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def __post_init__(self):
        if not self.host:
            raise ValueError("endpoint host must not be empty")
        if not isinstance(self.port, int) or isinstance(self.port, bool):
            raise ValueError("endpoint port must be an integer, not %r" % (self.port,))
        if not 0 < self.port < 65536:
            raise ValueError("endpoint port out of range: %d" % self.port)

    def __str__(self):
        if ":" in self.host:
            # bare IPv6 address
            return "[%s]:%d" % (self.host, self.port)
        return "%s:%d" % (self.host, self.port)

    @property
    def address(self):
        """Address tuple suitable for the socket module.

        :returns: (host, port) tuple
        :rtype: tuple
        """

        return (self.host, self.port)

    @classmethod
    def from_string(cls, text) -> "Endpoint":
        """Parses an endpoint from a configuration string.

        :param text: Endpoint in `host:port` form; `[addr]:port` is accepted
            for IPv6 addresses and the port may be omitted
        :type text: str

        :returns: Parsed endpoint
        :rtype: Endpoint

        A missing port falls back to the default device port. Anything that is
        not a valid port number raises `ValueError`."""

        text = text.strip()
        port = DEFAULT_PORT
        if text.startswith("["):
            host, sep, rest = text[1:].partition("]")
            if not sep:
                raise ValueError("unterminated IPv6 address in %r" % text)
            if rest:
                if not rest.startswith(":"):
                    raise ValueError("unexpected text after address in %r" % text)
                port = cls._parse_port(rest[1:], text)
        elif text.count(":") == 1:
            host, _, port_text = text.partition(":")
            port = cls._parse_port(port_text, text)
        else:
            host = text

        return cls(host or DEFAULT_HOST, port)

    @classmethod
    def coerce(cls, value) -> "Endpoint":
        """Builds an endpoint from any supported configuration value.

        :param value: Endpoint, (host, port) tuple, `host:port` string, or None
            for the default endpoint

        :returns: Endpoint instance
        :rtype: Endpoint
        """

        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls.from_string(value)
        if isinstance(value, tuple) and len(value) == 2:
            return cls(value[0], value[1])
        raise TypeError("cannot build an endpoint from %r" % (value,))

    @staticmethod
    def _parse_port(port_text, text):
        try:
            return int(port_text)
        except ValueError:
            raise ValueError("invalid port in %r" % text) from None
