"""Job dispatch and job-type handlers executed by the worker."""

# The queue client imports the dispatcher's failure callback, and the handlers
# import the queue client. Import concrete modules directly instead of relying
# on re-exported symbols here to keep that cycle from forming.

__all__ = []
