# ==============================================
# MySQLClient
# ==============================================
#
# PURPOSE:
#   Manages one MySQL connection and the SQL operations the mysql sink
#   needs: staging tables, batched inserts, promotion by rename, and the
#   sink state table.
#
# CLASS: MySQLClient
# ------------------
#   Stateful — holds one pymysql connection. Not thread-safe: each writer
#   gets its own client.
#
#   Constructor:
#   ------------
#   - __init__(host, port, user, password, database)
#       Store connection params. Don't connect yet.
#
#   Methods:
#   --------
#   - connect() / disconnect()
#       Create the database if needed. Connection problems are raised as
#       SinkConnectionError.
#
#   - table_exists(table_name) -> bool
#   - create_table(table_name, columns: dict[str, str], like=None)
#   - drop_table(table_name)
#   - insert_batch(table_name, columns, rows) -> int
#       executemany + commit; rolls back and re-raises on failure.
#   - rename_tables(pairs)        → one atomic RENAME TABLE statement
#   - copy_rows(source, target, columns)
#   - save_state(key, state_json) / load_state(key) -> str | None
#   - execute(query, params) / fetch_all(query, params)
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with MySQLClient(...) as db:` usage.
#
# ==============================================

from typing import Any, Dict, List, Optional, Sequence, Tuple, cast

import pymysql
import pymysql.cursors

from recordflow.errors import SinkConnectionError


STATE_TABLE = "_recordflow_state"


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


class MySQLClient:
    def __init__(self, host, port, user, password, database, connect_timeout: int = 10):
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.database = database
        self.connect_timeout = connect_timeout
        self.connection = None

    def connect(self) -> None:
        # Establish connection to MySQL, create database if it doesn't exist
        try:
            self.connection = pymysql.connect(
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                connect_timeout=self.connect_timeout,
                autocommit=False,
            )
        except pymysql.err.OperationalError as e:
            raise SinkConnectionError(
                f"Could not connect to MySQL at {self.host}:{self.port}: {e}"
            ) from e
        cursor = self.connection.cursor()
        cursor.execute(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(self.database)}")
        cursor.execute(f"USE {quote_identifier(self.database)}")
        cursor.close()

    def disconnect(self) -> None:
        if self.connection:
            self.connection.close()
            self.connection = None

    def _require_connection(self):
        if self.connection is None:
            raise SinkConnectionError("Not connected to MySQL")
        return self.connection

    def table_exists(self, table_name: str) -> bool:
        connection = self._require_connection()
        cursor = connection.cursor()
        cursor.execute(
            "SELECT COUNT(*) FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s",
            (self.database, table_name)
        )
        row = cursor.fetchone()
        cursor.close()
        return bool(row and row[0])

    def create_table(
        self,
        table_name: str,
        columns: Dict[str, str],
        like: Optional[str] = None,
    ) -> None:
        """
        Create a table from column definitions, or as a copy of `like`.

        Args:
            table_name: Table to create (dropped first if it exists)
            columns: Column name -> SQL type
            like: Existing table whose structure to copy instead
        """
        self.drop_table(table_name)
        if like is not None:
            query = f"CREATE TABLE {quote_identifier(table_name)} LIKE {quote_identifier(like)}"
        else:
            columns_def = ", ".join(
                f"{quote_identifier(name)} {sql_type} NULL" for name, sql_type in columns.items()
            )
            query = f"CREATE TABLE {quote_identifier(table_name)} ({columns_def})"
        self.execute(query)

    def drop_table(self, table_name: str) -> None:
        self.execute(f"DROP TABLE IF EXISTS {quote_identifier(table_name)}")

    def insert_batch(self, table_name: str, columns: List[str], rows: Sequence[Tuple[Any, ...]]) -> int:
        # Insert all rows in one transaction, return count inserted
        if not rows:
            return 0
        connection = self._require_connection()
        column_names = ", ".join(quote_identifier(column) for column in columns)
        placeholders = ", ".join(["%s"] * len(columns))
        query = f"INSERT INTO {quote_identifier(table_name)} ({column_names}) VALUES ({placeholders})"

        cursor = connection.cursor()
        try:
            cursor.executemany(query, list(rows))
            connection.commit()
        except Exception:
            connection.rollback()
            raise
        finally:
            cursor.close()
        return len(rows)

    def rename_tables(self, pairs: List[Tuple[str, str]]) -> None:
        # MySQL applies all renames of one statement atomically
        renames = ", ".join(
            f"{quote_identifier(old)} TO {quote_identifier(new)}" for old, new in pairs
        )
        self.execute(f"RENAME TABLE {renames}")

    def copy_rows(self, source: str, target: str, columns: List[str]) -> None:
        column_names = ", ".join(quote_identifier(column) for column in columns)
        self.execute(
            f"INSERT INTO {quote_identifier(target)} ({column_names}) "
            f"SELECT {column_names} FROM {quote_identifier(source)}"
        )

    def get_current_columns(self, table_name: str) -> List[str]:
        rows = self.fetch_all(
            "SELECT COLUMN_NAME FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s ORDER BY ORDINAL_POSITION",
            (self.database, table_name)
        )
        return [str(row["COLUMN_NAME"]) for row in rows]

    def ensure_state_table(self) -> None:
        self.execute(
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(STATE_TABLE)} ("
            "state_key VARCHAR(255) NOT NULL PRIMARY KEY, "
            "state JSON NOT NULL, "
            "updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP)"
        )

    def save_state(self, key: str, state_json: str) -> None:
        self.ensure_state_table()
        self.execute(
            f"REPLACE INTO {quote_identifier(STATE_TABLE)} (state_key, state) VALUES (%s, %s)",
            (key, state_json)
        )

    def load_state(self, key: str) -> Optional[str]:
        if not self.table_exists(STATE_TABLE):
            return None
        rows = self.fetch_all(
            f"SELECT state FROM {quote_identifier(STATE_TABLE)} WHERE state_key = %s",
            (key,)
        )
        if not rows:
            return None
        state = rows[0]["state"]
        return state.decode("utf-8") if isinstance(state, bytes) else str(state)

    def execute(self, query: str, params: tuple | None = None) -> None:
        connection = self._require_connection()
        cursor = connection.cursor()
        try:
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)
            connection.commit()
        finally:
            cursor.close()

    def fetch_all(self, query: str, params: tuple | None = None) -> List[Dict[str, Any]]:
        connection = self._require_connection()
        cursor = connection.cursor(pymysql.cursors.DictCursor)
        try:
            if params is not None:
                cursor.execute(query, params)
            else:
                cursor.execute(query)
            return cast(List[Dict[str, Any]], cursor.fetchall())
        finally:
            cursor.close()

    def __enter__(self) -> "MySQLClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
