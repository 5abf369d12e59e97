"""Minimal async Redis double covering the commands LockManager uses."""


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str | int] = {}
        self.ttls: dict[str, int] = {}
        self.fail_incr = False

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def incr(self, key: str) -> int:
        if self.fail_incr:
            raise ConnectionError("redis down")
        self.data[key] = int(self.data.get(key, 0)) + 1
        return self.data[key]

    async def eval(self, script: str, numkeys: int, *args):
        key, owner, *rest = args
        if self.data.get(key) != owner:
            return 0
        if "DEL" in script:
            del self.data[key]
            self.ttls.pop(key, None)
            return 1
        self.ttls[key] = int(rest[0])
        return 1
