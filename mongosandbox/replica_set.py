"""
Turns a freshly started `mongod --replSet` into a one-member replica set and waits until
it accepts writes (a connected primary) and transactions (a connected data-bearing member).
Both conditions are latched from pymongo topology events; the caller blocks on them in turn.
"""

import logging
import threading

import pymongo
from pymongo import monitoring
from pymongo.errors import PyMongoError
from pymongo.server_type import SERVER_TYPE

from .errors import (
    ReplicaSetCommandError,
    ReplicaSetReadinessTimeoutError,
    TransactionReadinessTimeoutError,
)
from .options import MongoRunnerOptions

logger = logging.getLogger(__name__)

# pymongo refreshes a direct connection every 10s by default, far too slow here.
HEARTBEAT_FREQUENCY_MS = 500

DATA_BEARING_SERVER_TYPES = frozenset(
    {
        SERVER_TYPE.Standalone,
        SERVER_TYPE.RSPrimary,
        SERVER_TYPE.RSSecondary,
        SERVER_TYPE.Mongos,
        SERVER_TYPE.LoadBalancer,
    }
)


def _is_connected(server) -> bool:
    return server.is_server_type_known and server.error is None


class ReplicaSetReadinessListener(monitoring.TopologyListener):
    """Sets each latch the first time a topology description satisfies it. Latches never reset."""

    def __init__(self):
        self.primary_ready = threading.Event()
        self.data_bearing_ready = threading.Event()

    def opened(self, event) -> None:
        pass

    def description_changed(self, event) -> None:
        servers = [s for s in event.new_description.server_descriptions().values() if _is_connected(s)]

        if not self.primary_ready.is_set() and any(s.server_type == SERVER_TYPE.RSPrimary for s in servers):
            logger.debug("Replica set primary elected")
            self.primary_ready.set()

        if not self.data_bearing_ready.is_set() and any(s.server_type in DATA_BEARING_SERVER_TYPES for s in servers):
            logger.debug("Data-bearing replica set member connected")
            self.data_bearing_ready.set()

    def closed(self, event) -> None:
        pass


class ReplicaSetInitializer:
    def __init__(self, options: MongoRunnerOptions, client_factory=pymongo.MongoClient):
        if options.mongo_port is None:
            raise ValueError("mongo_port must be resolved before initializing the replica set")
        self._options = options
        self._client_factory = client_factory
        self._listener = ReplicaSetReadinessListener()

    def initialize(self) -> None:
        # Subscribe before replSetInitiate so no topology change can be missed.
        client = self._client_factory(
            "127.0.0.1",
            self._options.mongo_port,
            directConnection=True,
            heartbeatFrequencyMS=HEARTBEAT_FREQUENCY_MS,
            event_listeners=[self._listener],
        )
        try:
            self._initiate(client)
            self._wait_for_replica_set_readiness()
            self._wait_for_transaction_readiness()
        finally:
            client.close()

    def _initiate(self, client) -> None:
        config = {
            "_id": self._options.replica_set_name,
            "members": [{"_id": 0, "host": f"127.0.0.1:{self._options.mongo_port}"}],
        }
        try:
            with pymongo.timeout(self._options.replica_set_setup_timeout):
                client.admin.command("replSetInitiate", config)
        except PyMongoError as ex:
            if ex.timeout:
                # The topology events may still report success.
                logger.debug("replSetInitiate timed out, waiting for topology events: %s", ex)
                return
            if self._options.standard_error_logger is not None:
                self._options.standard_error_logger(f"An error occurred while initializing the replica set: {ex!r}")
            raise ReplicaSetCommandError(f"replSetInitiate failed: {ex}") from ex

    def _wait_for_replica_set_readiness(self) -> None:
        timeout = self._options.replica_set_setup_timeout
        if not self._listener.primary_ready.wait(timeout):
            raise ReplicaSetReadinessTimeoutError(
                f"Replica set initialization took longer than the specified timeout of {timeout} seconds. "
                "Consider increasing the value of 'replica_set_setup_timeout'."
            )

    def _wait_for_transaction_readiness(self) -> None:
        timeout = self._options.replica_set_setup_timeout
        if not self._listener.data_bearing_ready.wait(timeout):
            raise TransactionReadinessTimeoutError(
                f"Cluster readiness for transactions took longer than the specified timeout of {timeout} seconds. "
                "Consider increasing the value of 'replica_set_setup_timeout'."
            )
