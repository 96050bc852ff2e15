from typing import Annotated

from fastapi import Depends, Request

from queue_manager.domain.config import ManagerConfig
from queue_manager.services.job_sets import JobSetService
from queue_manager.services.metrics import MetricsAggregator
from queue_manager.services.queue_control import QueueControlService
from queue_manager.services.registry import QueueRegistry
from queue_manager.store.base import JobStore


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_config(request: Request) -> ManagerConfig:
    return request.app.state.config


Store = Annotated[JobStore, Depends(get_store)]
Config = Annotated[ManagerConfig, Depends(get_config)]


# One registry per request, so one discovery pass per request
def get_registry(store: Store, config: Config) -> QueueRegistry:
    return QueueRegistry(store, config)


Registry = Annotated[QueueRegistry, Depends(get_registry)]


def get_queue_control(store: Store, registry: Registry, config: Config) -> QueueControlService:
    return QueueControlService(store, registry, config)


def get_job_sets(store: Store, config: Config) -> JobSetService:
    return JobSetService(store, config)


def get_metrics(store: Store, registry: Registry, config: Config) -> MetricsAggregator:
    return MetricsAggregator(store, registry, config)


QueueControl = Annotated[QueueControlService, Depends(get_queue_control)]
JobSets = Annotated[JobSetService, Depends(get_job_sets)]
Metrics = Annotated[MetricsAggregator, Depends(get_metrics)]
