"""
FreedomKit Sidecar -- privacy runtime for embedded publishing and wallet engines.

The sidecar hosts a publishing application and a private-transaction wallet
engine in one process, denies every outbound connection that is not local,
and keeps wallet secrets encrypted at rest behind a user password.
"""

__version__ = "1.2.0"
__author__ = "FreedomKit Team"
