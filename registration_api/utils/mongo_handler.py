from typing import Any, Dict, List, Optional
import time

from pymongo import ASCENDING, MongoClient, collection, database
from pymongo.errors import DuplicateKeyError, PyMongoError

from .logger import logger


UNIQUE_FIELDS = ("roll_number", "email")


class StoreError(RuntimeError):
    """Raised when a MongoDB read or write fails."""


class DuplicateRegistrationError(StoreError):
    """Raised when the unique index rejects an insert."""

    def __init__(self, field: str, message: str = "") -> None:
        super().__init__(message or f"Registration with this {field} already exists")
        self.field = field


class MongoDBHandler:
    """
    MongoDBHandler manages the connection to the registrations collection and provides
    the few operations the service needs: duplicate lookup, insert and fetch-all.

    A single MongoClient is kept per process so requests share pymongo's connection
    pool. Server selection, connect and socket timeouts are applied to every call,
    so an unreachable server fails the request instead of hanging it.

    Args:
        connection_string (str): The MongoDB connection string.
        database_name (str): Name of the database holding the registrations.
        collection_name (str): Name of the registrations collection.
        timeout_ms (int): Server selection, connect and socket timeout in milliseconds.
            Defaults to 5000.
        max_retries (int): Maximum number of attempts when connecting at start-up.
            Defaults to 3.
        retry_delay (float): Seconds to wait between connection attempts. Defaults to 5.

    Attributes:
        client (MongoClient): The MongoDB client instance, None once closed.
        db (database): The database instance.
        registrations (collection): Collection storing the submitted registrations.

    Raises:
        ConnectionError: If the connection to MongoDB fails after the maximum number of retries.
    """
    def __init__(
        self,
        connection_string: str,
        database_name: str,
        collection_name: str,
        timeout_ms: int = 5000,
        max_retries: int = 3,
        retry_delay: float = 5,
    ) -> None:
        self.connection_string = connection_string
        self.database_name = database_name
        self.collection_name = collection_name
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self.client: Optional[MongoClient] = None
        self.db: Optional[database.Database] = None
        self.registrations: Optional[collection.Collection] = None

        if not self.connect():
            logger.error("Failed to connect to MongoDB")
            raise ConnectionError("Could not connect to MongoDB after multiple attempts")

    @classmethod
    def from_settings(cls, settings) -> 'MongoDBHandler':
        return cls(
            settings.mongodb_uri,
            settings.database_name,
            settings.collection_name,
            timeout_ms=settings.mongo_timeout_ms,
            max_retries=settings.connect_retries,
        )

    def _create_client(self) -> MongoClient:
        return MongoClient(
            self.connection_string,
            serverSelectionTimeoutMS=self.timeout_ms,
            connectTimeoutMS=self.timeout_ms,
            socketTimeoutMS=self.timeout_ms,
        )

    def connect(self) -> bool:
        """
        Connect to MongoDB with retries and make sure the unique indexes exist.

        Returns:
            bool: True if the connection is successful, False otherwise.
        """
        for attempt in range(self.max_retries):
            try:
                self.client = self._create_client()
                self.client.admin.command("ping")
                break
            except PyMongoError as e:
                logger.error(f"MongoDB connection attempt {attempt + 1} failed: {e}")
                if self.client is not None:
                    self.client.close()
                    self.client = None
                if attempt == self.max_retries - 1:
                    return False
                time.sleep(self.retry_delay)
        else:
            return False

        self.db = self.client[self.database_name]
        self.registrations = self.db[self.collection_name]
        self.ensure_indexes()

        logger.info(f"Connected to MongoDB collection {self.database_name}.{self.collection_name}")
        return True

    def ensure_indexes(self) -> None:
        """
        Create one unique index per key field so concurrent submissions cannot
        both be stored. Existing duplicates make this fail; that is logged and the
        service keeps running on the lookup check alone.
        """
        for field in UNIQUE_FIELDS:
            try:
                self.registrations.create_index(
                    [(field, ASCENDING)],
                    unique=True,
                    name=f"unique_{field}",
                )
            except PyMongoError as e:
                logger.error(f"Failed to create unique index on {field}: {e}")

    def ensure_connection(self) -> None:
        """
        Ensure the MongoDB connection is alive, reconnecting if it was closed.

        Raises:
            ConnectionError: If the connection cannot be re-established.
        """
        if self.client is None:
            logger.info("MongoDB client closed, reconnecting...")
            if not self.connect():
                raise ConnectionError("Could not reconnect to MongoDB")

    def ping(self) -> bool:
        try:
            self.ensure_connection()
            client = self.client
            if client is None:
                raise ConnectionError("MongoDB connection was closed")
            client.admin.command("ping")
            return True
        except (ConnectionError, PyMongoError) as e:
            logger.error(f"MongoDB ping failed: {e}")
            return False

    def _collection(self) -> collection.Collection:
        """
        Return the live registrations collection, reconnecting if needed.

        The collection is read once so a concurrent close() cannot swap it
        for None mid-call.

        Raises:
            ConnectionError: If no collection is available.
        """
        self.ensure_connection()
        registrations = self.registrations
        if registrations is None:
            raise ConnectionError("MongoDB connection was closed")
        return registrations

    def find_existing(self, roll_number: Any, email: str) -> Optional[Dict[str, Any]]:
        """
        Find a stored registration sharing the roll number or the email.

        The roll number is looked up first, so a record holding the roll
        number is returned even when another record holds the email.

        Raises:
            StoreError: If the lookup fails.
        """
        try:
            registrations = self._collection()
            existing = registrations.find_one({'roll_number': roll_number})
            if existing is None:
                existing = registrations.find_one({'email': email})
            return existing
        except (ConnectionError, PyMongoError) as e:
            logger.error(f"Error in find_existing: {e}")
            raise StoreError(str(e)) from e

    def insert_registration(self, document: Dict[str, Any]) -> str:
        """
        Insert a registration and return its id as text.

        Args:
            document (Dict[str, Any]): The registration, already stripped of the
                CAPTCHA token and stamped with createdAt/submittedAt.

        Returns:
            str: The inserted ObjectId as a hex string.

        Raises:
            DuplicateRegistrationError: If a unique index rejects the document.
            StoreError: If the insert fails for any other reason.
        """
        try:
            registrations = self._collection()
            # insert_one adds _id to the dict it is given
            result = registrations.insert_one(dict(document))
        except DuplicateKeyError as e:
            field = duplicate_field(e)
            logger.info(f"Unique index rejected registration on {field}")
            raise DuplicateRegistrationError(field) from e
        except (ConnectionError, PyMongoError) as e:
            logger.error(f"Error in insert_registration: {e}")
            raise StoreError(str(e)) from e

        logger.info(f"Inserted registration: inserted_id={result.inserted_id}")
        return str(result.inserted_id)

    def get_all_registrations(self) -> List[Dict[str, Any]]:
        """
        Fetch every stored registration in insertion order.

        Raises:
            StoreError: If the query fails.
        """
        try:
            return list(self._collection().find({}))
        except (ConnectionError, PyMongoError) as e:
            logger.error(f"Error in get_all_registrations: {e}")
            raise StoreError(str(e)) from e

    def close(self) -> None:
        """Closes the MongoDB connection."""
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.db = None
        self.registrations = None

    def __enter__(self) -> 'MongoDBHandler':
        self.ensure_connection()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


def duplicate_field(error: DuplicateKeyError) -> str:
    """Name the key field behind a duplicate key error, roll_number first."""
    details = error.details or {}
    key_pattern = details.get('keyPattern') or details.get('keyValue') or {}
    for field in UNIQUE_FIELDS:
        if field in key_pattern:
            return field
    message = str(error)
    for field in UNIQUE_FIELDS:
        if f"unique_{field}" in message:
            return field
    return UNIQUE_FIELDS[0]
