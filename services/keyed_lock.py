import threading
from contextlib import contextmanager


class KeyedLock:
    """
    Lock table keyed by an arbitrary string (here, an identity id).

    Holders of the same key are serialized; different keys never contend.
    An entry lives only while someone holds or waits on it.
    """

    def __init__(self):
        self._registry_lock = threading.Lock()
        self._locks: dict[str, list] = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key: str):
        with self._registry_lock:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._registry_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
