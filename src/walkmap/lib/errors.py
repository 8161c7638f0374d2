"""Exceptions raised by walkmap."""


class WalkmapError(Exception):
    """Base class for walkmap errors."""


class FetchError(WalkmapError):
    """A map dataset could not be retrieved."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ConversionError(WalkmapError):
    """An activity file could not be turned into a map dataset."""
