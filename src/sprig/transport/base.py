from typing import Generic
from typing import TypeVar

from ..models import Request
from ..models import Response

NativeRequest = TypeVar("NativeRequest")
NativeResponse = TypeVar("NativeResponse")


class ClientBinding(Generic[NativeRequest, NativeResponse]):
    """
    Abstract client binding interface for sprig.
    All HTTP client backends should inherit from this class.

    A binding knows how to turn the client's own request/response objects into
    canonical ones and back, and how to send a native request. The pipeline is
    generic over this interface and never looks at the client itself.

    Supported clients:
    - httpx: transport-level binding (native httpx.Request / httpx.Response)
    - aiohttp: session-level binding (AiohttpCall / aiohttp.ClientResponse)
    - requests: session-level binding run in a thread pool
    """

    async def to_canonical_request(self, native: NativeRequest) -> Request:
        raise NotImplementedError("Client bindings must override this method.")

    async def apply_canonical_request(
        self, native: NativeRequest, request: Request
    ) -> NativeRequest:
        """
        Merge ``request`` onto ``native`` (or build a new native request from it).

        ``request`` is owned by the binding: its body may be read.
        """
        raise NotImplementedError("Client bindings must override this method.")

    async def to_canonical_response(self, native: NativeResponse) -> Response:
        raise NotImplementedError("Client bindings must override this method.")

    async def apply_canonical_response(
        self, native: NativeResponse, response: Response
    ) -> NativeResponse:
        raise NotImplementedError("Client bindings must override this method.")

    async def send(self, native: NativeRequest) -> NativeResponse:
        """Issue ``native`` through the client's own send path."""
        raise NotImplementedError("Client bindings must override this method.")
