class LifecycleGuard:
    """Single busy flag shared by every lifecycle-mutating operation.

    The orchestrator runs on one event loop, so a plain flag is enough:
    try_acquire() and release() never interleave with another coroutine.
    """

    def __init__(self):
        self._owner = None

    @property
    def busy(self):
        return self._owner is not None

    @property
    def owner(self):
        return self._owner

    def try_acquire(self, owner="operation"):
        if self._owner is not None:
            return False
        self._owner = owner
        return True

    def release(self):
        self._owner = None
