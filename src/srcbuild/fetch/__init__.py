"""Archive cache download APIs."""

from .http import DOWNLOADING_SUFFIX, download

__all__ = ["DOWNLOADING_SUFFIX", "download"]
