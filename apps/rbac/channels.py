"""
Channel access overlay.

A per-tenant, per-user set of named channels held in process memory. Grants
are independent of role permissions: passing one check says nothing about
the other, so callers needing both must check both.

The registry is created empty at import time and lives until process exit.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Set, Tuple

logger = logging.getLogger(__name__)


def _key(tenant_id, user_id) -> Tuple[str, str]:
    return (str(tenant_id), str(user_id))


class ChannelAccessRegistry:
    """
    Keyed store of channel grants.

    Writers to the same (tenant, user) key are serialised by that key's lock.
    A key's lock exists only while some thread holds or waits on it. The
    guard lock is only held while handing out or releasing a key's lock and
    while copying the store, never across a grant.
    """

    def __init__(self):
        self._grants: Dict[Tuple[str, str], Set[str]] = {}
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = {}
        self._guard = threading.Lock()

    @contextmanager
    def _locked(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._lock_users[key] -= 1
                if not self._lock_users[key]:
                    del self._lock_users[key]
                    del self._locks[key]

    def grant(self, tenant_id, user_id, channel: str) -> List[str]:
        """Add ``channel`` for the user. Granting twice is a no-op."""
        if not channel:
            raise ValueError('Channel name is required')

        key = _key(tenant_id, user_id)
        with self._locked(key):
            channels = set(self._grants.get(key, ()))
            channels.add(channel)
            self._grants[key] = channels
            current = sorted(channels)

        logger.info(
            "Channel granted",
            extra={'tenant_id': key[0], 'user_id': key[1], 'channel': channel}
        )
        return current

    def revoke(self, tenant_id, user_id, channel: str) -> List[str]:
        """Remove ``channel`` for the user. Revoking a missing grant is a no-op."""
        key = _key(tenant_id, user_id)
        with self._locked(key):
            channels = set(self._grants.get(key, ()))
            channels.discard(channel)
            if channels:
                self._grants[key] = channels
            else:
                self._grants.pop(key, None)
            current = sorted(channels)

        logger.info(
            "Channel revoked",
            extra={'tenant_id': key[0], 'user_id': key[1], 'channel': channel}
        )
        return current

    def check(self, tenant_id, user_id, channel: str) -> bool:
        return channel in self._grants.get(_key(tenant_id, user_id), ())

    def channels_for(self, tenant_id, user_id) -> List[str]:
        return sorted(self._grants.get(_key(tenant_id, user_id), ()))

    def list(self, tenant_id) -> Dict[str, Set[str]]:
        """Mapping of user id to granted channels for one tenant."""
        tenant_key = str(tenant_id)
        with self._guard:
            snapshot = list(self._grants.items())
        return {
            user_key: set(channels)
            for (grant_tenant, user_key), channels in snapshot
            if grant_tenant == tenant_key and channels
        }

    def replace(self, tenant_id, mapping: Dict[str, Iterable[str]]) -> Dict[str, Set[str]]:
        """
        Make ``mapping`` the tenant's full channel map.

        Users present in the current map but absent from ``mapping`` lose all
        their channels. Each user key is rewritten under its own lock.
        """
        tenant_key = str(tenant_id)
        wanted = {
            str(user_id): {channel for channel in channels if channel}
            for user_id, channels in mapping.items()
        }

        for user_key in set(self.list(tenant_key)) | set(wanted):
            key = (tenant_key, user_key)
            with self._locked(key):
                channels = wanted.get(user_key)
                if channels:
                    self._grants[key] = set(channels)
                else:
                    self._grants.pop(key, None)

        logger.info(
            "Channel map replaced",
            extra={'tenant_id': tenant_key, 'user_count': len(wanted)}
        )
        return self.list(tenant_key)

    def clear(self):
        with self._guard:
            self._grants.clear()


channel_access = ChannelAccessRegistry()
