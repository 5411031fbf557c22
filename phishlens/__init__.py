"""PhishLens - URL risk scoring from independent, partially failing signals."""

__version__ = "0.1.0"

from phishlens.config import settings

__all__ = ["settings", "__version__"]
