# ==============================================
# STORAGE (MySQL + MongoDB)
# ==============================================
#
# Thin database clients used by the mysql and mongo sinks:
# connecting, staging tables / collections, batched inserts, promotion
# and the stored sink state.
#
# Modules:
# --------
# - mysql_client.py    → MySQL connection and operations (pymysql)
# - mongo_client.py    → MongoDB connection and operations (pymongo)
#
# ==============================================

from .mysql_client import MySQLClient
from .mongo_client import MongoClient

__all__ = [
    "MySQLClient",
    "MongoClient",
]
