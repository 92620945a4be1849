import json

from pacedreq.req.transport import Transport, TransportResponse


class FakeTransport(Transport):
    """Replays a sequence of responses; the last item repeats forever."""

    def __init__(self, items):
        self._items = list(items)
        self.calls = []

    async def send(self, request, cancel=None):
        self.calls.append(request)
        item = self._items.pop(0) if len(self._items) > 1 else self._items[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return await item(request, cancel)
        return item


class FixedRandom:
    """Stand-in for random.Random that always draws the same value."""

    def __init__(self, value=0.0):
        self.value = value

    def uniform(self, a, b):
        return self.value


def response(status=200, payload=None, text=""):
    if payload is not None:
        body = json.dumps(payload).encode()
    else:
        body = text.encode()
    return TransportResponse(status=status, body=body)
