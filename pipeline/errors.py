class ProcessingError(RuntimeError):
    """A file in the batch could not be decoded or transformed.

    Fatal to the whole batch; callers surface a single generic failure.
    """


class EmptyAlbumError(ValueError):
    """An album was submitted without pages."""
