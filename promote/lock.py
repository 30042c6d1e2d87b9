"""Run-lock for promotions.

Two promotions writing to the same environment at once would interleave
mirror deletes, table drops and maintenance toggles. Every run therefore
takes an advisory lease on each environment it is about to change, before
the first mutating step, and gives it back when it finishes, successfully
or not.

Leases expire. A run that is SIGKILL'd or loses its host never releases its
lease, and an expired lease is treated as free. Every lease carries a token
unique to the run that took it, and a run only ever removes a lease that
still carries its own token: a run that outlived its lease leaves the
lease of whoever reclaimed it alone.

Two backends are available:
- a lease file per environment in lock.dir. Runs only exclude each other
  if they see the same lock.dir, so it must be a directory shared by every
  host that runs promotions (an NFS mount, for instance).
- a redis key per environment, when lock.redis_url is configured.

There is no default: with neither configured, no run can take a lock.

Any user of this module generally cares about `run_lock` only.
"""

import fcntl
import json
import os
import socket
import ssl
import time
import uuid
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Iterable, Optional

import redis

from .errors import LockUnavailable
from .logs import promote_logger
from .topology import EnvironmentIdentity

_REDIS_LOCK_PREFIX = "PROMOTE_LOCK_"


def _owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def lock_name(identity) -> str:
    # "production2" and "prod2" are the same environment and share a lease.
    if isinstance(identity, EnvironmentIdentity):
        return identity.name
    return str(identity)


class FileLease:
    """A lease held as a JSON file in a shared directory.

    Reading, reclaiming and removing the lease file all happen under an
    exclusive flock on a sibling guard file, so two runs never both decide
    that a stale lease is theirs.
    """

    def __init__(self, lock_dir: str, identity: str, expire_seconds: int) -> None:
        self.path = Path(lock_dir).joinpath(f"{identity}.lock")
        self.guard_path = Path(lock_dir).joinpath(f".{identity}.guard")
        self.identity = identity
        self.expire_seconds = expire_seconds
        self.token = uuid.uuid4().hex

    @contextmanager
    def _guarded(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.guard_path, "a") as guard:
            fcntl.flock(guard, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(guard, fcntl.LOCK_UN)

    def _write(self, now: float) -> None:
        staging = self.path.with_name(f".{self.path.name}.{self.token}")
        with open(staging, "w") as f:
            json.dump(
                {
                    "owner": _owner(),
                    "token": self.token,
                    "pid": os.getpid(),
                    "host": socket.gethostname(),
                    "acquired": now,
                    "expires": now + self.expire_seconds,
                },
                f,
            )
        os.replace(staging, self.path)

    def holder(self) -> Optional[dict]:
        """
        Read the current lease, if any.

        Returns:
            The lease contents, or None if there is no lease file. A lease
            file that cannot be parsed is reported as expired.
        """
        try:
            with open(self.path) as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (ValueError, OSError):
            return {"owner": "unknown", "expires": 0}

    def acquire(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        with self._guarded():
            lease = self.holder()
            if lease is not None:
                if lease.get("expires", 0) > now:
                    return False
                promote_logger.warning(
                    f"Reclaiming expired lease {self.path} held by {lease.get('owner')}.",
                    extra={"label": self.identity},
                )
            self._write(now)
            return True

    def release(self) -> None:
        with self._guarded():
            lease = self.holder()
            if lease is None or lease.get("token") != self.token:
                promote_logger.warning(
                    f"Lease {self.path} is no longer ours"
                    f" (now held by {lease and lease.get('owner')}), leaving it in place.",
                    extra={"label": self.identity},
                )
                return
            self.path.unlink()


class RedisLease:
    """A lease held as a redis key, through redis-py's Lock: SET NX with an
    expiry to take it, and a compare-and-delete on the token to give it
    back."""

    def __init__(self, conn: redis.Redis, identity: str, expire_seconds: int) -> None:
        self.conn = conn
        self.key = f"{_REDIS_LOCK_PREFIX}{identity}"
        self.identity = identity
        self.token = f"{_owner()}:{uuid.uuid4().hex}"
        # the run can be SIGKILL'd anytime, which with bad luck could leave
        # the lock "held" forever without a timeout.
        self.lock = conn.lock(self.key, timeout=expire_seconds, blocking=False)

    def holder(self) -> Optional[str]:
        value = self.conn.get(self.key)
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def acquire(self) -> bool:
        return bool(self.lock.acquire(token=self.token))

    def release(self) -> None:
        try:
            self.lock.release()
        except redis.exceptions.LockNotOwnedError:
            promote_logger.warning(
                f"Lock {self.key} expired and was taken by another run, leaving it in place.",
                extra={"label": self.identity},
            )


def redis_connection(redis_uri: str) -> redis.Redis:
    """
    Create a connection to redis.

    Args:
        redis_uri: redis uri to connect to

    Returns:
        A redis connection
    """
    if redis_uri.startswith("rediss"):
        return redis.from_url(redis_uri, ssl_cert_reqs=ssl.CERT_NONE)
    return redis.from_url(redis_uri)


def make_lease(identity: str, lock_settings, conn: Optional[redis.Redis] = None):
    """Build the lease for one environment from the lock settings.

    Raises:
        LockUnavailable: neither lock.redis_url nor lock.dir is configured.
    """
    if lock_settings.redis_url or conn is not None:
        conn = conn if conn is not None else redis_connection(lock_settings.redis_url)
        return RedisLease(conn, identity, lock_settings.expire_seconds)
    if lock_settings.dir:
        return FileLease(lock_settings.dir, identity, lock_settings.expire_seconds)
    raise LockUnavailable(
        "No run-lock is configured. Set lock.dir to a directory shared by every"
        " host that runs promotions, or lock.redis_url."
    )


@contextmanager
def lease(identity, lock_settings, conn: Optional[redis.Redis] = None):
    """Hold the run-lock on one environment for the duration of the block.

    A failure to give the lease back is logged, never raised.

    Raises:
        LockUnavailable: another run holds an unexpired lease, or the lock
                         store could not be reached.
    """
    name = lock_name(identity)
    held = make_lease(name, lock_settings, conn)
    try:
        if not held.acquire():
            raise LockUnavailable(
                f"Another promotion is running against {identity}"
                f" (lease held by {held.holder()})."
            )
    except (redis.exceptions.RedisError, OSError) as e:
        raise LockUnavailable(f"Could not take the run-lock on {identity}:\n\n{e}") from e
    promote_logger.debug("Acquired run-lock.", extra={"label": name})
    try:
        yield held
    finally:
        try:
            held.release()
            promote_logger.debug("Released run-lock.", extra={"label": name})
        except (redis.exceptions.RedisError, OSError) as e:
            promote_logger.error(
                f"Could not release the run-lock, it expires on its own: {e}",
                extra={"label": name},
            )


@contextmanager
def run_lock(identities: Iterable, lock_settings, conn: Optional[redis.Redis] = None):
    """Hold the run-lock on every environment in identities, taken in order.

    If any lease is unavailable, the ones already taken are released before
    LockUnavailable propagates.
    """
    with ExitStack() as stack:
        for identity in identities:
            stack.enter_context(lease(identity, lock_settings, conn))
        yield
