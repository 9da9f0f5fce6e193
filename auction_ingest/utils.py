# auction_ingest/utils.py
"""Shared utilities: logging setup and the retry decorator.

Every outbound call that can fail transiently (Apify runs, page loads) is
wrapped with ``retry`` so backoff behaviour is declared at the call site.
"""
import logging
import random
import time
from functools import wraps

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def get_logger(name=__name__, level=None):
    level = (level or "INFO").upper()
    logging.basicConfig(format=LOG_FORMAT, level=getattr(logging, level, logging.INFO))
    return logging.getLogger(name)


def configure_logging(level="INFO", verbose=False):
    """Reset the root level once settings are known (CLI / API startup)."""
    resolved = logging.DEBUG if verbose else getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(format=LOG_FORMAT, level=resolved)
    logging.getLogger().setLevel(resolved)


logger = get_logger("auction-ingest")


def retry(exceptions, tries=3, delay=0.5, backoff=2, jitter=0.0, logger=logger):
    """Retry the wrapped call on ``exceptions``.

    ``tries`` is the total number of attempts. The wait before attempt n+1 is
    ``delay * backoff**(n-1)`` plus a uniform random ``[0, jitter]`` seconds.
    The last failure is re-raised unchanged.
    """
    def deco_retry(f):
        @wraps(f)
        def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            while mtries > 1:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    wait = mdelay + (random.uniform(0, jitter) if jitter else 0.0)
                    logger.warning("Retryable error in %s: %s, retrying in %.2f sec", f.__name__, e, wait)
                    time.sleep(wait)
                    mtries -= 1
                    mdelay *= backoff
            return f(*args, **kwargs)
        return f_retry
    return deco_retry
