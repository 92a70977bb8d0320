"""volley executor - HTTP request execution."""

import ssl
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from itertools import islice
from typing import Iterator

import requests
import urllib3
from requests.adapters import HTTPAdapter

from volley.auth import AuthProfile
from volley.errors import NetworkError
from volley.request import ExecutionPlan, RequestSpec


class ResponseRecord:
    """Result of one execution of the request."""

    def __init__(self, iteration: int = 0):
        self.iteration: int = iteration
        self.status_code: int = 0
        self.reason: str = ""
        self.headers: dict[str, str] = {}
        self.body: bytes = b""
        self.elapsed: float = 0.0  # seconds
        self.error: str | None = None


class TLSAdapter(HTTPAdapter):
    """Transport adapter that hands a prepared SSL context to urllib3.

    When the context carries its own CA, that CA is the only trust
    anchor: the default bundle requests would otherwise attach to each
    connection is never loaded into the shared context.
    """

    def __init__(self, ssl_context: ssl.SSLContext, own_ca: bool = False, **kwargs):
        self._ssl_context = ssl_context
        self._own_ca = own_ca
        super().__init__(**kwargs)

    def cert_verify(self, conn, url, verify, cert):
        super().cert_verify(conn, url, verify, cert)
        if verify and self._own_ca:
            conn.ca_certs = None
            conn.ca_cert_dir = None

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self._ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args, **kwargs):
        kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)


def build_session(auth: AuthProfile | None, plan: ExecutionPlan) -> requests.Session:
    """Build the one HTTP client shared by every iteration of a run."""
    session = requests.Session()
    session.verify = plan.verify_tls

    context = auth.ssl_context if auth else None
    if context is not None and not plan.verify_tls:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    pool = {"pool_connections": 1, "pool_maxsize": plan.concurrency}
    if context is not None:
        session.mount("https://", TLSAdapter(context, own_ca=auth.ca is not None, **pool))
    else:
        session.mount("https://", HTTPAdapter(**pool))
    session.mount("http://", HTTPAdapter(**pool))

    if not plan.verify_tls:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    return session


def send(session: requests.Session, spec: RequestSpec, plan: ExecutionPlan) -> requests.Response:
    """Send one request, translating transport failures into NetworkError."""
    try:
        return session.request(
            method=spec.method,
            url=spec.url,
            headers=spec.wire_headers(),
            data=spec.body,
            timeout=plan.timeout,
            allow_redirects=plan.follow_redirects,
        )
    except requests.exceptions.Timeout as e:
        raise NetworkError(f"Request timed out after {plan.timeout}s") from e
    except requests.exceptions.SSLError as e:
        raise NetworkError(f"TLS error: {e}") from e
    except requests.exceptions.ConnectionError as e:
        raise NetworkError(f"Connection error: {e}") from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Request failed: {e}") from e


def execute_request(
    session: requests.Session,
    spec: RequestSpec,
    plan: ExecutionPlan,
    iteration: int = 0,
) -> ResponseRecord:
    """Execute the request once and return a ResponseRecord.

    Never raises for network problems: the record's error field is set
    instead, so one failed iteration does not disturb the others.
    """
    record = ResponseRecord(iteration)

    start = time.monotonic()
    try:
        resp = send(session, spec, plan)
    except NetworkError as e:
        record.elapsed = time.monotonic() - start
        record.error = str(e)
        return record
    record.elapsed = time.monotonic() - start

    record.status_code = resp.status_code
    record.reason = resp.reason or ""
    record.headers = dict(resp.headers)
    record.body = resp.content or b""
    return record


def run(
    spec: RequestSpec,
    auth: AuthProfile | None,
    plan: ExecutionPlan,
    session: requests.Session | None = None,
) -> Iterator[ResponseRecord]:
    """Execute the plan, yielding records as iterations complete.

    At most plan.concurrency requests are in flight. Iterations are
    numbered from 1 when repeating, otherwise the single record is 0.
    A session built here is closed when the run finishes.
    """
    if session is None:
        with build_session(auth, plan) as session:
            yield from _dispatch(session, spec, plan)
        return
    yield from _dispatch(session, spec, plan)


def _dispatch(session: requests.Session, spec: RequestSpec, plan: ExecutionPlan) -> Iterator[ResponseRecord]:
    if not plan.labelled:
        yield execute_request(session, spec, plan)
        return

    # At most plan.concurrency futures exist at once.
    iterations = iter(range(1, plan.repeat_times + 1))
    with ThreadPoolExecutor(max_workers=plan.concurrency, thread_name_prefix="volley") as pool:
        pending = {
            pool.submit(execute_request, session, spec, plan, i)
            for i in islice(iterations, plan.concurrency)
        }
        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for i in islice(iterations, len(done)):
                pending.add(pool.submit(execute_request, session, spec, plan, i))
            while done:
                yield done.pop().result()
