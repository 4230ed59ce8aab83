import uuid


class FakeHTTPXResponse:
    def __init__(self, json_data=None, status_code=200, text=""):
        self._json_data = json_data or {}
        self.status_code = status_code
        self.text = text

    def json(self):
        return self._json_data


class FakeHTTPXClient:
    """Stands in for ``httpx.Client`` and records every POST."""

    def __init__(self, response=None, error=None):
        self.response = response or FakeHTTPXResponse()
        self.error = error
        self.calls = []

    def __call__(self, *args, **kwargs):
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def post(self, url, content=None, headers=None):
        self.calls.append({"url": url, "content": content, "headers": headers or {}})
        if self.error is not None:
            raise self.error
        return self.response


class StaticApproverPolicy:
    """Approver policy returning a fixed list of user ids."""

    def __init__(self, *users):
        self.ids = [u if isinstance(u, uuid.UUID) else u.id for u in users]

    def approvers(self, db, entity_type, entity):
        return list(self.ids)
