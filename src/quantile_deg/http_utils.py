"""HTTP session used for cohort downloads (retries, Retry-After, default timeout)."""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

USER_AGENT = "quantile-deg/0.1"


def create_session(
    max_retries: int = 3,
    backoff_factor: float = 1.0,
    status_forcelist: tuple = (429, 500, 502, 503, 504),
    allowed_methods: tuple = ("GET", "POST"),
    timeout: int = 120,
    user_agent: str = USER_AGENT,
) -> requests.Session:
    """
    Session for Xena hub downloads.

    Throttled (429) and server-error responses are retried with
    exponential backoff, honouring any Retry-After header. Every request
    gets ``timeout`` seconds unless the caller passes its own.
    """
    session = requests.Session()
    retries = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=allowed_methods,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": user_agent})
    session.request = _wrap_with_timeout(session.request, timeout=timeout)
    return session


def _wrap_with_timeout(request_method, timeout: int):
    def request_with_timeout(method, url, **kwargs):
        kwargs.setdefault("timeout", timeout)
        return request_method(method, url, **kwargs)

    return request_with_timeout
