"""
DynDNS Relay - A dynamic DNS update endpoint for CloudFlare.

This package provides a small HTTP service that authenticates update requests
with a shared secret and points an existing CloudFlare DNS record at the
caller's (or a requested) IPv4 address.
"""

__version__ = "0.1.0"
__author__ = "DynDNS Relay Contributors"
