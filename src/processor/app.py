"""Wiring of store, broker, routes, handlers and listeners."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from constants import Constants, QueueNames
from domain.memory import InMemoryStore
from messaging.broker import InMemoryBroker
from messaging.bus import Consumer, Producer, Router
from messaging.dedup import DedupGuard
from registry.packagist import LocalFileStorage, PackagistClient

from .handlers import (
    CheckDependencyStatusHandler,
    PackageDiscoveryHandler,
    PackagePurgeHandler,
    UpdateDependencyStatusHandler,
    UpdateVersionStatusHandler,
)
from .listeners import (
    DependencyCreatedListener,
    DependencyUpdatedListener,
    PackageCreatedListener,
    PackageUpdatedListener,
    VersionCreatedListener,
    VersionUpdatedListener,
)


@dataclass
class Application:
    store: InMemoryStore
    broker: InMemoryBroker
    router: Router
    producer: Producer
    consumer: Consumer
    client: PackagistClient
    dedup: DedupGuard

    def queues(self):
        return self.router.queues()

    def drain(self) -> int:
        """Process every queue until no message is left."""
        return self.consumer.drain(self.router.queues())


def default_client() -> PackagistClient:
    return PackagistClient(LocalFileStorage(Constants.CACHE_DIR), offline=Constants.OFFLINE)


def default_store() -> InMemoryStore:
    """Store whose preferences (the change feed cursor) persist under CACHE_DIR."""
    return InMemoryStore(preference_storage=LocalFileStorage(Constants.CACHE_DIR))


def build_router(
    store: InMemoryStore,
    client: PackagistClient,
    producer: Producer,
    router: Router,
    dedup: DedupGuard,
    mirror: Optional[str] = None,
) -> Router:
    router.add(
        PackageDiscoveryHandler(
            store.packages, store.versions, store.dependencies, client, producer, dedup, mirror=mirror
        ),
        QueueNames.PACKAGE_DISCOVERY.value,
    )
    router.add(PackagePurgeHandler(store.packages, producer, dedup), QueueNames.PACKAGE_PURGE.value)
    router.add(
        CheckDependencyStatusHandler(store.packages, store.dependencies, producer, dedup),
        QueueNames.CHECK_DEPENDENCY_STATUS.value,
    )
    router.add(
        UpdateDependencyStatusHandler(store.packages, store.dependencies, producer, dedup),
        QueueNames.UPDATE_DEPENDENCY_STATUS.value,
    )
    router.add(
        UpdateVersionStatusHandler(store.versions, store.dependencies, producer, dedup),
        QueueNames.UPDATE_VERSION_STATUS.value,
    )

    router.add(PackageCreatedListener(producer), QueueNames.PACKAGE_EVENTS.value)
    router.add(PackageUpdatedListener(producer), QueueNames.PACKAGE_EVENTS.value)
    router.add(VersionCreatedListener(store.packages, producer), QueueNames.VERSION_EVENTS.value)
    router.add(VersionUpdatedListener(), QueueNames.VERSION_EVENTS.value)
    router.add(DependencyCreatedListener(producer), QueueNames.DEPENDENCY_EVENTS.value)
    router.add(DependencyUpdatedListener(producer), QueueNames.DEPENDENCY_EVENTS.value)
    return router


def build_application(
    client: Optional[PackagistClient] = None,
    store: Optional[InMemoryStore] = None,
    broker: Optional[InMemoryBroker] = None,
    dedup: Optional[DedupGuard] = None,
    mirror: Optional[str] = None,
) -> Application:
    store = store if store is not None else InMemoryStore()
    broker = broker if broker is not None else InMemoryBroker()
    dedup = dedup if dedup is not None else DedupGuard()
    client = client if client is not None else default_client()

    router = Router()
    producer = Producer(broker, router)
    build_router(store, client, producer, router, dedup, mirror=mirror)
    for queue in router.queues():
        broker.declare(queue)
    return Application(
        store=store,
        broker=broker,
        router=router,
        producer=producer,
        consumer=Consumer(broker, router),
        client=client,
        dedup=dedup,
    )
