"""Signal providers and their result envelope."""

from phishlens.providers.protocol import BaseProvider, ErrorInfo, SignalResult

__all__ = ["BaseProvider", "ErrorInfo", "SignalResult"]
