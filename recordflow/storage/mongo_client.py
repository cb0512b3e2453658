# ==============================================
# MongoClient
# ==============================================
#
# PURPOSE:
#   Manages the MongoDB connection and the document operations the mongo
#   sink needs. Documents keep their nested structure as-is.
#
# CLASS: MongoClient
# ------------------
#   Stateful — holds a pymongo client.
#
#   Constructor:
#   ------------
#   - __init__(host, port, database, user=None, password=None)
#
#   Methods:
#   --------
#   - connect() / disconnect()
#       Ping on connect. Connection / authentication failures are raised
#       as SinkConnectionError.
#   - insert_batch(collection_name, documents) -> int   (ordered insert_many)
#   - collection_exists(collection_name) -> bool
#   - drop_collection(collection_name)
#   - rename_collection(source, target)   → replaces target
#   - save_state(key, state) / load_state(key) -> dict | None
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with MongoClient(...) as db:` usage.
#
# ==============================================

from typing import Any, Dict, List, Optional

from pymongo import MongoClient as PyMongoClient
from pymongo.errors import ConnectionFailure, OperationFailure

from recordflow.errors import SinkConnectionError


STATE_COLLECTION = "_recordflow_state"


class MongoClient:
    def __init__(self, host, port, database, user=None, password=None):
        # Store connection params. Don't connect yet.
        self.host = host
        self.port = int(port)
        self.database = database
        self.user = user
        self.password = password
        self.client = None

    def connect(self) -> None:
        try:
            if self.user and self.password:
                uri = f"mongodb://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"
            else:
                uri = f"mongodb://{self.host}:{self.port}/{self.database}"
            self.client = PyMongoClient(uri, serverSelectionTimeoutMS=10000)
            # Test connection
            self.client.admin.command('ping')
        except ConnectionFailure as e:
            raise SinkConnectionError(f"Could not connect to MongoDB at {self.host}:{self.port}: {e}") from e
        except OperationFailure as e:
            raise SinkConnectionError(f"MongoDB authentication failed: {e}") from e

    def disconnect(self) -> None:
        if self.client:
            self.client.close()
            self.client = None

    def _db(self):
        if not self.client:
            raise SinkConnectionError("Not connected to MongoDB.")
        return self.client[self.database]

    def insert_batch(self, collection_name: str, documents: List[Dict[str, Any]]) -> int:
        if not documents:
            return 0
        result = self._db()[collection_name].insert_many(documents, ordered=True)
        return len(result.inserted_ids)

    def collection_exists(self, collection_name: str) -> bool:
        return collection_name in self._db().list_collection_names()

    def drop_collection(self, collection_name: str) -> None:
        self._db().drop_collection(collection_name)

    def rename_collection(self, source: str, target: str) -> None:
        db = self._db()
        if source not in db.list_collection_names():
            # nothing was written: promote an empty collection
            db.create_collection(source)
        db[source].rename(target, dropTarget=True)

    def save_state(self, key: str, state: Dict[str, Any]) -> None:
        self._db()[STATE_COLLECTION].replace_one(
            {"_id": key}, {"_id": key, "state": state}, upsert=True
        )

    def load_state(self, key: str) -> Optional[Dict[str, Any]]:
        document = self._db()[STATE_COLLECTION].find_one({"_id": key})
        if document is None:
            return None
        return document.get("state")

    def __enter__(self) -> "MongoClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
