"""
Error classes for treepulse.
"""


class TreePulseError(Exception):
    """Base error for monitor operations."""
    pass


class HostAdapterError(TreePulseError):
    """Host adapter raised or supplied a malformed root list."""
    pass
