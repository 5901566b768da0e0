"""
Error Taxonomy

Exceptions raised at the collaborator boundaries of the conversation engine.
Parse errors are not exceptions: they are returned as ParseFailure values.
"""


class LearningPathError(Exception):
    """Base class for learning path tutor errors."""


class BackendCallError(LearningPathError):
    """The text generation backend failed or returned nothing usable."""


class PersistenceError(LearningPathError):
    """The key/value substrate rejected a read or a write."""


class SessionFormatError(LearningPathError):
    """A stored or imported session does not have the expected shape."""
