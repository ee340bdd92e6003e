"""
MongoDB-backed record store.

The client is created lazily on first use and shared by every caller
(pymongo clients are thread-safe). Each store operation is a single
request against the ``users`` or ``admin`` collection and is bounded by
``timeoutMS``. Driver errors are translated into the store error taxonomy
so the failover layer can tell transient outages from fatal ones.
"""

from __future__ import annotations

import logging
import re
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from bson import errors as bson_errors
from pymongo import MongoClient
from pymongo import errors as mongo_errors
from pymongo.collection import Collection
from pymongo.database import Database

from musclerise.config import Settings
from musclerise.errors import (
    AuthenticationFailed,
    BackendUnavailable,
    Corrupt,
    DuplicateUsername,
    NameResolutionFailed,
    StoreError,
    Timeout,
)
from musclerise.records import User, decode_admin, decode_user, encode
from musclerise.store import (
    ADMIN_SETTINGS_KEY,
    EntityKind,
    Record,
    check_record,
    check_replacement,
)

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}

# 18: AuthenticationFailed, 8000: Atlas "bad auth".
AUTH_ERROR_CODES = {18, 8000}

# Case-insensitive comparison for usernames.
USERNAME_COLLATION = {"locale": "en", "strength": 2}

TIMEOUT_ERRORS = (
    mongo_errors.NetworkTimeout,
    mongo_errors.ServerSelectionTimeoutError,
    mongo_errors.ExecutionTimeout,
    mongo_errors.WTimeoutError,
)

DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated",
    "dns query name does not exist",
    "dns operation timed out",
    "no such host",
)


def split_endpoint(uri: str) -> tuple[list[str], bool]:
    """Return the host names in a connection string and whether it is SRV."""
    scheme, sep, rest = uri.partition("://")
    if not sep or scheme not in ("mongodb", "mongodb+srv"):
        raise ValueError(
            "connection string must start with mongodb:// or mongodb+srv://"
        )
    netloc = re.split(r"[/?]", rest, maxsplit=1)[0]
    host_list = netloc.rpartition("@")[2]
    hosts = []
    for item in host_list.split(","):
        if item.startswith("["):
            hosts.append(item[1 : item.find("]")])
        elif item:
            hosts.append(item.split(":", 1)[0])
    return hosts, scheme == "mongodb+srv"


def redact_endpoint(uri: str) -> str:
    """Hide the password in a connection string so it can be logged."""
    return re.sub(r"(://[^:/@]+):[^@/]*@", r"\1:***@", uri)


def default_tls(uri: str) -> bool:
    try:
        hosts, is_srv = split_endpoint(uri)
    except ValueError:
        return True
    if is_srv or not hosts:
        return True
    return not all(host in LOOPBACK_HOSTS for host in hosts)


def classify_error(exc: mongo_errors.PyMongoError) -> StoreError:
    """Map a driver exception onto the store error taxonomy."""
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, mongo_errors.OperationFailure) and (
        exc.code in AUTH_ERROR_CODES or "authentication failed" in lowered
    ):
        return AuthenticationFailed(message)
    if any(marker in lowered for marker in DNS_FAILURE_MARKERS):
        return NameResolutionFailed(message)
    if isinstance(exc, TIMEOUT_ERRORS) or getattr(exc, "timeout", False):
        return Timeout(message)
    return BackendUnavailable(message)


class MongoRecordStore:
    """Record store over the ``users`` and ``admin`` collections."""

    def __init__(
        self,
        endpoint: str,
        database_name: str,
        *,
        use_encrypted_transport: Optional[bool] = None,
        allow_weak_certificate_validation: bool = False,
        connect_timeout_ms: int = 15000,
        operation_timeout_ms: int = 15000,
    ):
        if not endpoint or not database_name:
            raise ValueError("MongoRecordStore needs an endpoint and a database name")
        self.endpoint = endpoint
        self.database_name = database_name
        if use_encrypted_transport is None:
            use_encrypted_transport = default_tls(endpoint)
        self.use_encrypted_transport = use_encrypted_transport
        self.allow_weak_certificate_validation = allow_weak_certificate_validation
        self.connect_timeout_ms = connect_timeout_ms
        self.operation_timeout_ms = operation_timeout_ms

        self._lock = threading.Lock()
        self._client: Optional[MongoClient] = None
        self._indexes_ready = False
        self._auth_failure: Optional[AuthenticationFailed] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MongoRecordStore":
        return cls(
            settings.mongo_uri or "",
            settings.db_name or "",
            use_encrypted_transport=settings.mongo_tls,
            allow_weak_certificate_validation=(
                settings.mongo_tls_allow_invalid_certificates
            ),
            connect_timeout_ms=settings.mongo_connect_timeout_ms,
            operation_timeout_ms=settings.mongo_operation_timeout_ms,
        )

    def client_options(self) -> dict:
        options = {
            "appname": "musclerise",
            "connectTimeoutMS": self.connect_timeout_ms,
            "serverSelectionTimeoutMS": self.connect_timeout_ms,
            "timeoutMS": self.operation_timeout_ms,
            "retryWrites": True,
            "tls": self.use_encrypted_transport,
        }
        if self.use_encrypted_transport and self.allow_weak_certificate_validation:
            options["tlsAllowInvalidCertificates"] = True
            options["tlsAllowInvalidHostnames"] = True
        return options

    def _get_client(self) -> MongoClient:
        with self._lock:
            if self._client is None:
                if self.allow_weak_certificate_validation:
                    logger.warning(
                        "Certificate validation is disabled for %s",
                        redact_endpoint(self.endpoint),
                    )
                logger.info(
                    "Connecting to MongoDB at %s", redact_endpoint(self.endpoint)
                )
                self._client = MongoClient(self.endpoint, **self.client_options())
            return self._client

    def _database(self) -> Database:
        database = self._get_client()[self.database_name]
        with self._lock:
            if not self._indexes_ready:
                users = database[EntityKind.USER.value]
                try:
                    users.create_index("id", unique=True)
                    users.create_index(
                        "username",
                        name="username_ci",
                        unique=True,
                        collation=USERNAME_COLLATION,
                    )
                except mongo_errors.OperationFailure as exc:
                    if exc.code == 11000:
                        raise Corrupt(
                            f"users collection holds duplicate keys: {exc}"
                        ) from exc
                    raise
                self._indexes_ready = True
        return database

    def _collection(self, kind: EntityKind) -> Collection:
        return self._database()[kind.value]

    @contextmanager
    def _translate(self, operation: str) -> Iterator[None]:
        if self._auth_failure is not None:
            raise AuthenticationFailed(str(self._auth_failure))
        try:
            yield
        except StoreError:
            raise
        except (bson_errors.InvalidBSON, bson_errors.InvalidDocument) as exc:
            raise Corrupt(f"{operation}: undecodable document: {exc}") from exc
        except mongo_errors.PyMongoError as exc:
            error = classify_error(exc)
            if isinstance(error, AuthenticationFailed):
                self._auth_failure = error
            logger.debug("MongoDB %s failed: %r", operation, exc)
            raise error from exc

    def ping(self) -> None:
        with self._translate("ping"):
            self._get_client().admin.command("ping")

    def _find_admin(self) -> Optional[dict]:
        # At most one document; its _id may be a generated ObjectId.
        with self._translate("get"):
            cursor = self._collection(EntityKind.ADMIN).find({}, {"_id": 0})
            docs = list(cursor.limit(2))
        if len(docs) > 1:
            raise Corrupt("admin collection holds more than one document")
        return docs[0] if docs else None

    def get(self, kind: EntityKind, key: str) -> Optional[Record]:
        if kind is EntityKind.ADMIN:
            if key != ADMIN_SETTINGS_KEY:
                return None
            raw = self._find_admin()
            return decode_admin(raw) if raw is not None else None
        with self._translate("get"):
            raw = self._collection(kind).find_one({"id": key}, {"_id": 0})
        return decode_user(raw) if raw is not None else None

    def list(self, kind: EntityKind) -> list[Record]:
        if kind is EntityKind.ADMIN:
            admin = self.get(kind, ADMIN_SETTINGS_KEY)
            return [admin] if admin is not None else []
        with self._translate("list"):
            docs = list(self._collection(kind).find({}, {"_id": 0}).sort("$natural", 1))
        return [decode_user(doc) for doc in docs]

    def put(self, kind: EntityKind, record: Record) -> None:
        check_record(kind, record)
        doc = encode(record)
        with self._translate("put"):
            collection = self._collection(kind)
            if kind is EntityKind.ADMIN:
                # migratedAt is left untouched; only replace_all writes it.
                doc.pop("migratedAt", None)
                collection.update_one(
                    {},
                    {"$set": doc, "$setOnInsert": {"_id": ADMIN_SETTINGS_KEY}},
                    upsert=True,
                )
                return
            try:
                collection.replace_one({"id": record.id}, doc, upsert=True)
            except mongo_errors.DuplicateKeyError as exc:
                raise DuplicateUsername(record.username) from exc

    def delete_by_key(self, kind: EntityKind, key: str) -> int:
        if kind is EntityKind.ADMIN and key != ADMIN_SETTINGS_KEY:
            return 0
        query = {"id": key} if kind is EntityKind.USER else {}
        with self._translate("delete"):
            result = self._collection(kind).delete_one(query)
        return result.deleted_count

    def count(self, kind: EntityKind) -> int:
        with self._translate("count"):
            return self._collection(kind).count_documents({})

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._translate("get_user_by_username"):
            raw = self._collection(EntityKind.USER).find_one(
                {"username": username}, {"_id": 0}, collation=USERNAME_COLLATION
            )
        return decode_user(raw) if raw is not None else None

    def replace_all(self, kind: EntityKind, records: Sequence[Record]) -> int:
        check_replacement(kind, records)
        docs = [encode(record) for record in records]
        if kind is EntityKind.ADMIN:
            docs = [{"_id": ADMIN_SETTINGS_KEY, **doc} for doc in docs]
        with self._translate("replace_all"):
            collection = self._collection(kind)
            deleted = collection.delete_many({}).deleted_count
            logger.info("Deleted %d existing %s document(s)", deleted, kind.value)
            if docs:
                collection.insert_many(docs, ordered=True)
        logger.info("Inserted %d %s document(s)", len(docs), kind.value)
        return len(docs)

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                logger.info("MongoDB connection closed")
            self._client = None
            self._indexes_ready = False
            self._auth_failure = None
