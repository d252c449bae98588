"""
Errors Module
Exceptions and warnings raised by the recoloring core
"""


class InvalidFormat(ValueError):
    """Malformed hex color string"""


class NoRelevantColor(UserWarning):
    """Dominant color detection found no eligible pixels"""


class ProcessingInterrupted(RuntimeError):
    """A recolor pass failed part way through

    The buffer holds everything written before the failing chunk.
    """

    def __init__(self, message, buffer=None, processed=0):
        super().__init__(message)
        self.buffer = buffer
        self.processed = processed
