"""
Retry policy for upstream calls a user is actively waiting on (questionnaire
structure load, final submit).

Background calls (autosave, override refresh) are never wrapped; the next
user event or broadcast retries them.
"""
import logging

import httpx
from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

UPSTREAM_ATTEMPTS = 3

# Connect failures and timeouts are retried. An HTTP error status is an
# answer from the upstream and is raised straight away.
retry_external_api = retry(
    stop=stop_after_attempt(UPSTREAM_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(httpx.TransportError),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    after=after_log(logger, logging.DEBUG),
    reraise=True,
)
