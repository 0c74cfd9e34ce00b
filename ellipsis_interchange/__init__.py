"""
Ellipsis Interchange - Character and Story Interchange Codec

Reads and writes character cards (PNG), archive bundles (BYAF/ZIP) and
native Ellipsis story JSON, translating all of them to and from a single
canonical Story model.
"""

__version__ = "0.1.0"
