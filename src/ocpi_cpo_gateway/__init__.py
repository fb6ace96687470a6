"""OCPI CPO gateway: request dispatch, access control, pagination and commands."""

__version__ = "0.1.0"

__all__ = ["__version__"]
