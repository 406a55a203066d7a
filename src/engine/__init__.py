"""Policy matching and delegation lifecycle rules.

This package holds pure functions over loaded records. It performs no
I/O and is shared by every storage backend.
"""
