from typing import TYPE_CHECKING, Dict, Optional

from attrs import define, field

if TYPE_CHECKING:
    from exdrf_tv.data_source import FetchParams  # noqa: F401


@define
class FetchRequest:
    """A request for a page of records from the data source.

    Attributes:
        params: The parameters sent to the data source.
        token: The position of the request in the issue order.
        done: Whether a response (or a failure) was received.
    """

    params: "FetchParams"
    token: int = field(default=-1, init=False)
    done: bool = field(default=False, init=False)


class FetchRequestManager:
    """Issues tokens for fetch requests and tracks those in progress.

    Tokens increase monotonically; only the response to the most recently
    issued request is allowed to change the state of a table.

    Attributes:
        uniq_gen: The token of the next request.
        requests: The requests that did not complete yet.
    """

    uniq_gen: int
    requests: Dict[int, FetchRequest]

    def __init__(self) -> None:
        self.uniq_gen = 0
        self.requests = {}

    def add_request(self, params: "FetchParams") -> FetchRequest:
        """Create a request and assign it the next token."""
        req = FetchRequest(params)
        req.token = self.uniq_gen
        self.uniq_gen += 1
        self.requests[req.token] = req
        return req

    @property
    def latest_token(self) -> Optional[int]:
        """The token of the last issued request, if any."""
        return self.uniq_gen - 1 if self.uniq_gen else None

    def is_latest(self, token: int) -> bool:
        return token == self.latest_token

    def complete(self, token: int) -> bool:
        """Mark a request as answered.

        Returns:
            True if the request is the latest one and its response should
            be applied.
        """
        req = self.requests.pop(token, None)
        if req is not None:
            req.done = True
        return self.is_latest(token)

    def discard(self, token: int) -> None:
        """Forget a request that will never be sent."""
        self.requests.pop(token, None)

    @property
    def pending(self) -> bool:
        """Whether the latest request is still waiting for a response."""
        token = self.latest_token
        return token is not None and token in self.requests
