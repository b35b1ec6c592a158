"""Exception types raised inside the bridge."""


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigError(BridgeError):
    """A setting could not be parsed or is out of range."""


class LedgerError(BridgeError):
    """A remote ledger query failed or timed out."""


class DecodeError(BridgeError):
    """A single log entry could not be turned into an Event."""
