# knowbase/db.py
from __future__ import annotations
import logging
import os
from pathlib import Path
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

# WICHTIG: die gemeinsame Base der Modelle verwenden, nicht neu definieren!
from knowbase.models.base import Base
from knowbase.errors import ConflictError, StorageError

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------
# Pfad: data/knowbase.db
# --------------------------------------------------------------------
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "data" / "knowbase.db"

DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")

# Execution-Option, mit der atomic() eine Schreib-Transaktion anfordert
WRITE_TXN_OPTION = "knowbase_write"


def _install_sqlite_hooks(eng) -> None:
    """
    pysqlite öffnet Transaktionen selbst (und zu spät). Wir schalten das ab und
    starten Transaktionen selbst: Lesen mit einfachem (deferred) BEGIN, atomic()
    mit BEGIN IMMEDIATE. Schreiber werden serialisiert, Prüfen und Schreiben
    sehen denselben Graphen, Leser warten nicht auf den Schreib-Lock.
    """
    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_conn, _record):
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(WRITE_TXN_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def _make_engine(url: str):
    if url.startswith("sqlite"):
        if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        eng = create_engine(url, echo=False, connect_args={"check_same_thread": False})
        _install_sqlite_hooks(eng)
        return eng
    # andere Backends: Serialisierbarkeit erzwingen
    return create_engine(url, echo=False, isolation_level="SERIALIZABLE")


engine = None
SessionLocal = sessionmaker(autoflush=False, autocommit=False)

# --------------------------------------------------------------------
# Sessions
# --------------------------------------------------------------------
def get_session() -> Session:
    """
    Liefert eine *neue* Session-Instanz zurück.
    Aufrufer ist für close() verantwortlich; Schreibvorgänge laufen über atomic().
    """
    return SessionLocal()


def _is_conflict(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in {"40001", "40P01"}:
        return True
    msg = str(orig or exc).lower()
    return "database is locked" in msg or "could not serialize" in msg or "deadlock" in msg


def translate_db_error(exc: SQLAlchemyError) -> StorageError:
    if isinstance(exc, OperationalError) and _is_conflict(exc):
        return ConflictError("storage conflict, please retry")
    return StorageError("storage error")


@contextmanager
def atomic(db: Session):
    """
    Eine Transaktion, alles oder nichts:
      with atomic(db):
          ...
    SQLAlchemy-Fehler werden nach dem Rollback als StorageError/ConflictError
    weitergereicht, fachliche Fehler unverändert.
    """
    try:
        if not db.in_transaction():
            # SQLite: BEGIN IMMEDIATE; laufende Lese-Transaktion wird weiterverwendet
            db.connection(execution_options={WRITE_TXN_OPTION: True})
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("db.transaction.failed")
        raise translate_db_error(e) from e
    except Exception:
        db.rollback()
        raise

# --------------------------------------------------------------------
# SQLite – Checks & Mini-Migration
# --------------------------------------------------------------------
def _sqlite_table_exists(conn, name: str) -> bool:
    r = conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name=:n"),
        {"n": name},
    ).fetchone()
    return r is not None


def _sqlite_column_exists(conn, table: str, col: str) -> bool:
    rows = conn.exec_driver_sql(f"PRAGMA table_info({table})").fetchall()
    # PRAGMA table_info: (cid, name, type, notnull, dflt_value, pk)
    return any(row[1] == col for row in rows)


def _sqlite_safe_migrate():
    """
    Kleine Migration für bestehende SQLite-DB:
    - Spalte category.sort_order anhängen, falls sie fehlt.
    """
    with engine.begin() as conn:
        if _sqlite_table_exists(conn, "categories") and not _sqlite_column_exists(conn, "categories", "sort_order"):
            conn.exec_driver_sql(
                "ALTER TABLE categories ADD COLUMN sort_order INTEGER NOT NULL DEFAULT 0"
            )
            logger.info("db.migrate added=categories.sort_order")

# --------------------------------------------------------------------
# Init DB (auf App-Start)
# --------------------------------------------------------------------
def init_db(url: str | None = None):
    """
    Initialisiert die Datenbank.
    - Optional: URL-Override (Tests/Config).
    - Registriert Modelle, legt fehlende Tabellen an.
    - Führt Mini-Migrationen aus (nur SQLite).
    """
    global engine

    if engine is not None:
        engine.dispose()
    engine = _make_engine(url or DATABASE_URL)
    SessionLocal.configure(bind=engine)

    # Modelle importieren, damit ihre Tabellen bei Base registriert werden
    from knowbase.models import category, article, tag  # noqa: F401

    if engine.dialect.name == "sqlite":
        try:
            _sqlite_safe_migrate()
        except SQLAlchemyError:
            logger.exception("db.migrate.failed")
            raise

    # Tabellen erstellen (nur fehlende)
    Base.metadata.create_all(bind=engine)
    logger.info("db.init dialect=%s", engine.dialect.name)
