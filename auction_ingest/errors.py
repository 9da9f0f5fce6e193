# auction_ingest/errors.py
"""Exception hierarchy for the ingestion pipeline.

Expected bad input (malformed or out-of-domain records) is never raised;
it travels as a ``NormalizeReject`` value. These exceptions cover the
failures that stop a source or a run.
"""


class IngestError(Exception):
    """Base class for all ingestion failures."""


class IngestConfigError(IngestError):
    """Missing or invalid configuration, detected before any source runs."""


class SourceFetchError(IngestError):
    """A source could not be fetched after retries."""


class PageFetchError(IngestError):
    """A single HTML page failed to load."""


class RepositoryWriteError(IngestError):
    """The primary listing row could not be written."""
