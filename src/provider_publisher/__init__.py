"""Publish Terraform provider releases to a private registry."""

__version__ = "0.1.0"
