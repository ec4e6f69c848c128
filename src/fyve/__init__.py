"""fyve: deploy and update containerized applications."""

__version__ = "0.3.0"
