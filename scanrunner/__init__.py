"""scanrunner - orchestrates security-check plugins against container images."""

__version__ = "0.1.0"
