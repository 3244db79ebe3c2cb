"""Timeline export core: rate-limit pacing, export lifecycle and lossless resume merge."""

__version__ = "0.1.0"
