from typing import Callable, Iterable, Iterator, Optional


class ScanStream:
    """Lazy, restartable sequence of decoded codes.

    `source` is a zero-argument factory returning an iterable of decoded
    strings (camera decoder, keyboard wedge, a file of codes). Every `start`
    calls it again; `stop` only halts capture and has no effect on network
    calls already in flight.
    """

    def __init__(self, source: Callable[[], Iterable[str]]):
        self._source = source
        self._it: Optional[Iterator[str]] = None

    @property
    def active(self) -> bool:
        return self._it is not None

    def start(self) -> "ScanStream":
        if self._it is None:
            self._it = iter(self._source())
        return self

    def stop(self) -> None:
        it, self._it = self._it, None
        close = getattr(it, "close", None)
        if close is not None:
            close()

    def __iter__(self) -> "ScanStream":
        return self

    def __next__(self) -> str:
        while self._it is not None:
            try:
                code = next(self._it)
            except StopIteration:
                self.stop()
                break
            code = (code or "").strip()
            if code:
                return code
        raise StopIteration

    def next_code(self) -> Optional[str]:
        """Next non-blank code, or None when stopped or exhausted."""
        return next(self, None)
