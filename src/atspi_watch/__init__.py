"""AT-SPI cache event listener."""

__version__ = "0.1.0"
