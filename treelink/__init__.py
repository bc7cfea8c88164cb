"""
Treelink is a client for devices that expose a hierarchical configuration
tree over a point-to-point byte stream.

It keeps one persistent connection to the device, continuously receives data
from it on a background thread, and lets the application push modified node
payloads back over the same connection. The bytes themselves are opaque here:
decoding the tree protocol and presenting or editing the tree are left to
whatever subscribes to the stream's notifications.

The package is split into a transport-independent `Stream` base class (link
lifecycle, continuous receive, notifications), concrete transports such as
`TcpStream`, and the listener classes used to observe them.
"""

# .py files
from .common import *
from .Exceptions import *

from .Endpoint import *
from .Listener import *

from .Stream import *
from .TcpStream import *
