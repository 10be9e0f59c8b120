"""formula-runner — execute one package formula end-to-end."""

__version__ = "0.1.0"
