"""Storage and versioning layer.

This package persists policies and delegations in versioned directories
through pluggable file codecs, with an in-memory record cache.
"""
