"""
Wraps - Email infrastructure deployment for your own AWS account.

A CLI that deploys, connects, updates and tears down SES-based email
infrastructure, keeping a local record of each deployment per account and
region.
"""

__version__ = "0.1.0"

from wraps_cli.core.exceptions import WrapsError

__all__ = ["WrapsError"]
