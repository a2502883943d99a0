# rentwatch/storage/state.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
import threading
from datetime import datetime, timezone
from typing import Dict

LOG = logging.getLogger("state")


def _key(namespace: str, ad_id: str) -> str:
    return f"{namespace}:{ad_id}"


class SeenStore:
    """
    JSON-file seen store.

    Layout on disk:
    {
      "<namespace>:<ad_id>": true,
      ...
    }
    Several namespaces can live in one file; switching SEEN_NAMESPACE makes
    every earlier marker invisible without deleting it.
    """

    def __init__(self, path: str, namespace: str = "seen"):
        self.path = path
        self.namespace = namespace
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        self._state: Dict[str, bool] = self._load()

    # ---------------------- file/disk ----------------------
    def _load(self) -> Dict[str, bool]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            LOG.warning("seen file %s unreadable, starting empty", self.path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self) -> None:
        """Atomic write: temp file in the same directory, then os.replace."""
        tmp_dir = os.path.dirname(self.path) or "."
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile("w", delete=False, dir=tmp_dir, encoding="utf-8") as tf:
                tmp_name = tf.name
                json.dump(self._state, tf, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            # the original file stays untouched in the worst case
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

    # ---------------------- contract ----------------------
    def has_seen(self, ad_id: str) -> bool:
        return bool(self._state.get(_key(self.namespace, ad_id)))

    def mark_seen(self, ad_id: str) -> None:
        key = _key(self.namespace, ad_id)
        if self._state.get(key):
            return
        self._state[key] = True
        self.save()

    def count(self) -> int:
        prefix = self.namespace + ":"
        return sum(1 for k, v in self._state.items() if v and k.startswith(prefix))

    def close(self) -> None:
        pass


class SQLiteSeenStore:
    """Same contract as SeenStore, backed by one sqlite table."""

    def __init__(self, db_path: str = "state.db", namespace: str = "seen"):
        self.db_path = db_path
        self.namespace = namespace
        os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        # the job queue and the HTTP trigger may touch the store from different threads
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._init_schema()

    def _locked_cursor(self):
        """Context manager that acquires the lock, yields a cursor and commits on success."""
        class Ctx:
            def __init__(self, outer):
                self.outer = outer
                self.cur = None

            def __enter__(self):
                self.outer._lock.acquire()
                self.cur = self.outer.conn.cursor()
                return self.cur

            def __exit__(self, exc_type, exc, tb):
                try:
                    if exc_type is None:
                        self.outer.conn.commit()
                    else:
                        self.outer.conn.rollback()
                finally:
                    self.cur.close()
                    self.outer._lock.release()

        return Ctx(self)

    def _init_schema(self) -> None:
        with self._locked_cursor() as cur:
            cur.execute("PRAGMA journal_mode=WAL;")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS seen (
                    key TEXT PRIMARY KEY,
                    value INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT
                )
                """
            )

    def has_seen(self, ad_id: str) -> bool:
        with self._locked_cursor() as cur:
            cur.execute("SELECT value FROM seen WHERE key = ?", (_key(self.namespace, ad_id),))
            row = cur.fetchone()
        return bool(row and row["value"])

    def mark_seen(self, ad_id: str) -> None:
        with self._locked_cursor() as cur:
            cur.execute(
                "INSERT OR IGNORE INTO seen (key, value, created_at) VALUES (?, 1, ?)",
                (_key(self.namespace, ad_id), datetime.now(timezone.utc).isoformat()),
            )

    def count(self) -> int:
        with self._locked_cursor() as cur:
            prefix = self.namespace + ":"
            cur.execute("SELECT COUNT(*) AS n FROM seen WHERE substr(key, 1, ?) = ? AND value = 1",
                        (len(prefix), prefix))
            return int(cur.fetchone()["n"])

    def close(self) -> None:
        with self._lock:
            self.conn.close()


def open_seen_store(settings):
    """Seen store chosen by SEEN_BACKEND, keyed under SEEN_NAMESPACE."""
    if settings.seen_backend == "json":
        LOG.info("seen store: json file=%s namespace=%s", settings.state_file, settings.seen_namespace)
        return SeenStore(settings.state_file, settings.seen_namespace)
    LOG.info("seen store: sqlite db=%s namespace=%s", settings.state_db, settings.seen_namespace)
    return SQLiteSeenStore(settings.state_db, settings.seen_namespace)
