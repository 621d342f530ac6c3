from __future__ import annotations

import os
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from stackrestore.core.errors import DatabaseEngineError, DatabaseRestoreError
from stackrestore.core.logger import get_logger
from stackrestore.core.redaction import redact_text
from stackrestore.core.restore.backends.process import CommandRunner, run_command
from stackrestore.core.restore.models import ComponentKind, RestoreResult
from stackrestore.core.restore.paths import StagedArchive
from stackrestore.core.restore.restorers.base import ComponentRestorer

POSTGRES = "postgresql"
MYSQL = "mysql"
MONGODB = "mongodb"
UNKNOWN_ENGINE = "unknown"

POSTGRES_DUMP = "postgres_dump.sql"
MYSQL_DUMP = "mysql_dump.sql"

_SCHEMES: Dict[str, str] = {
    "postgres": POSTGRES,
    "postgresql": POSTGRES,
    "mysql": MYSQL,
    "mongodb": MONGODB,
    "mongodb+srv": MONGODB,
}


def detect_engine(url: str) -> str:
    scheme = url.split("://", 1)[0].lower() if "://" in url else ""
    if scheme in _SCHEMES:
        return _SCHEMES[scheme]
    # driver-qualified forms such as postgresql+asyncpg or mysql+pymysql
    base = scheme.split("+", 1)[0]
    if base in (POSTGRES, "postgres", MYSQL):
        return _SCHEMES[base]
    return UNKNOWN_ENGINE


def psql_url(url: str) -> str:
    """psql only understands plain libpq URIs, drop any driver qualifier."""
    scheme, sep, rest = url.partition("://")
    if sep and "+" in scheme:
        return f"postgresql://{rest}"
    return url


def mysql_command(url: str) -> Tuple[List[str], Dict[str, str]]:
    parts = urlsplit(url)
    args = ["mysql"]
    if parts.hostname:
        args += ["--host", parts.hostname]
    if parts.port:
        args += ["--port", str(parts.port)]
    if parts.username:
        args += ["--user", unquote(parts.username)]
    db = parts.path.lstrip("/")
    if db:
        args.append(unquote(db))
    env = {"MYSQL_PWD": unquote(parts.password)} if parts.password else {}
    return args, env


class DatabaseRestorer(ComponentRestorer):
    """
    Replays the external database dump with the engine's own client tool,
    chosen from the connection string scheme.
    """

    kind = ComponentKind.DATABASE
    continues_on_item_failure = False

    def __init__(self, database_url: Optional[str], *, runner: CommandRunner = run_command, logger=None):
        super().__init__(logger or get_logger("database"))
        self.database_url = database_url or None
        self.runner = runner

    def restore(self, staged: StagedArchive) -> RestoreResult:
        result = RestoreResult(kind=self.kind)
        if not self.database_url:
            return self._skip(result, DatabaseEngineError("No database URL configured, skipping database restore.", engine=""))

        engine = detect_engine(self.database_url)
        if engine == UNKNOWN_ENGINE:
            scheme = self.database_url.split("://", 1)[0] if "://" in self.database_url else ""
            return self._skip(result, DatabaseEngineError(f"Unsupported database type: {scheme or '(none)'}", engine=scheme))

        if engine == POSTGRES:
            dump = os.path.join(staged.database_dir, POSTGRES_DUMP)
            if not os.path.isfile(dump):
                return self._no_dump(result, POSTGRES_DUMP)
            self.log.info(f"    restoring from: {POSTGRES_DUMP}")
            self._exec(engine, ["psql", "-v", "ON_ERROR_STOP=1", psql_url(self.database_url)], stdin_path=dump)
        elif engine == MYSQL:
            dump = os.path.join(staged.database_dir, MYSQL_DUMP)
            if not os.path.isfile(dump):
                return self._no_dump(result, MYSQL_DUMP)
            args, env = mysql_command(self.database_url)
            self.log.info(f"    restoring from: {MYSQL_DUMP}")
            self._exec(engine, args, stdin_path=dump, env=env)
        else:
            self.log.info("    restoring from MongoDB dump")
            self._exec(engine, ["mongorestore", f"--uri={self.database_url}", "--drop", staged.database_dir])

        result.items_total = result.items_ok = 1
        result.detail = f"{engine} restored"
        return result

    def _exec(self, engine: str, args: List[str], *, stdin_path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> None:
        shown = [redact_text(a) for a in args]
        try:
            res = self.runner(args, stdin_path=stdin_path, env=env)
        except FileNotFoundError as e:
            raise DatabaseRestoreError(f"{args[0]} is not installed or not on PATH.", engine=engine, command=shown) from e
        except OSError as e:
            raise DatabaseRestoreError(f"{args[0]} could not be started.", engine=engine, command=shown, reason=str(e)) from e
        if res.returncode != 0:
            stderr = redact_text((res.stderr or "").strip())[-2000:]
            raise DatabaseRestoreError(f"{args[0]} exited with code {res.returncode}.", engine=engine, command=shown, stderr=stderr)

    def _skip(self, result: RestoreResult, err: DatabaseEngineError) -> RestoreResult:
        self.log.warning(f"  {err.user_message}")
        result.status = "skipped"
        result.failures.append(err.to_dict())
        result.detail = err.user_message
        return result

    def _no_dump(self, result: RestoreResult, name: str) -> RestoreResult:
        self.log.warning(f"  {name} not found in backup, skipping database restore")
        result.status = "skipped"
        result.detail = f"{name} not found"
        return result
