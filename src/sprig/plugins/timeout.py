from ..models import AbortSignal
from ..models import Request
from . import Plugin


class TimeoutPlugin(Plugin):
    """
    Aborts the request if it has not completed ``seconds`` after the hook ran.

    A signal already on the request keeps working: the request is aborted by
    whichever of the two fires first. The pipeline releases the signal this hook
    attaches once the call settles, which cancels the timer.
    """

    name = "plugin-timeout"

    def __init__(self, seconds: float):
        super().__init__()
        if seconds <= 0:
            raise ValueError("seconds must be > 0")
        self.seconds = seconds

    async def before_request(self, request: Request) -> Request:
        timer = AbortSignal.timeout(self.seconds)
        if request.signal is None:
            return request.replace(signal=timer)
        combined = AbortSignal.any([request.signal, timer])
        combined.add_release_callback(timer.release)
        return request.replace(signal=combined)
