"""Treelink Exception Definitions

These derived exception classes provide a way for Treelink code to raise unique
exceptions to be caught (optionally) by application code.
"""

class TreelinkException(Exception):
    """Base exception class for any Treelink-related exception

    This type may be used to catch Treelink exceptions generally within an
    application, but should not be raised directly. Rather, extend the class
    into something more specific (as in the TreelinkReceiveException) and then
    raise that instead.
    """

    pass

class TreelinkHalException(TreelinkException):
    """Exception class for transport access functions

    Treelink code raises this type of exception if a base class method is not
    correctly re-implemented in a child class (e.g. `Stream._open_handle` vs.
    `TcpStream._open_handle`).
    """

    pass

class TreelinkReceiveException(TreelinkException):
    """Exception class for fatal continuous-receive faults

    When the receive thread stops because of anything other than a peer close,
    a peer reset or an explicit cancellation, the original exception is
    wrapped in this type (available as `__cause__`) and re-raised in the
    owning thread by `Stream.join()`.

    Listeners that fail while being told about the error or the resulting
    disconnection cannot stop the receive thread from finishing; their
    exceptions are collected in `listener_errors` instead.
    """

    def __init__(self, *args):
        super().__init__(*args)
        self.listener_errors = []
