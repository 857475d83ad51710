"""Dependency injection container for the application."""

import boto3
from botocore.config import Config as BotoConfig
from dependency_injector import providers
from dependency_injector.containers import DeclarativeContainer

from batch_orchestrator.config import config
from batch_orchestrator.infrastructure.amqp import build_connection_parameters
from batch_orchestrator.infrastructure.database import create_database_engine
from batch_orchestrator.infrastructure.lambda_client import LambdaClient


def _create_session() -> boto3.Session:
    """Create boto3 session using default credential chain.

    - On EC2/ECS: uses instance or task role
    - Locally: uses ~/.aws/credentials
    """
    return boto3.Session(region_name=config.aws_region)


def _create_lambda_boto_client(session: boto3.Session):
    """Lambda client bounded by the invocation timeout, retries handled by Invoker."""
    return session.client(
        "lambda",
        config=BotoConfig(
            connect_timeout=config.lambda_connect_timeout,
            read_timeout=config.lambda_read_timeout,
            retries={"total_max_attempts": 1, "mode": "standard"},
        ),
    )


def _create_invoker(lambda_client: LambdaClient):
    """Factory for Invoker to avoid circular import."""
    from batch_orchestrator.services.invoker import Invoker

    return Invoker(
        lambda_client,
        max_attempts=config.invoke_max_attempts,
        backoff_min=config.invoke_backoff_min,
        backoff_max=config.invoke_backoff_max,
    )


def _create_routing_table():
    """Factory for RoutingTable, frozen from the loaded configuration."""
    from batch_orchestrator.services.routing_table import RoutingTable

    return RoutingTable(config.lambda_functions)


def _create_router(routing_table, invoker):
    """Factory for Router to avoid circular import."""
    from batch_orchestrator.services.router import Router

    return Router(routing_table, invoker)


def _create_store(store_name: str, engine):
    """Factory for the relational stores."""
    from batch_orchestrator.services import stores

    return getattr(stores, store_name)(engine)


def _create_connection_parameters():
    return build_connection_parameters(
        host=config.rabbitmq_host,
        port=config.rabbitmq_port,
        user=config.rabbitmq_user,
        password=config.rabbitmq_password,
        virtual_host=config.rabbitmq_vhost,
        heartbeat=config.rabbitmq_heartbeat,
        retry_delay=config.rabbitmq_recovery_interval,
    )


def _create_publisher(parameters):
    """Factory for OutcomePublisher to avoid circular import."""
    from batch_orchestrator.services.publisher import OutcomePublisher

    return OutcomePublisher(parameters, config.rabbitmq_exchange)


def _create_orchestrator(
    batch_store, profile_store, log_store, client_store, file_store, router, publisher
):
    """Factory for BatchOrchestrator to avoid circular import."""
    from batch_orchestrator.handlers.orchestration import BatchOrchestrator

    return BatchOrchestrator(
        batch_store=batch_store,
        profile_store=profile_store,
        log_store=log_store,
        router=router,
        publisher=publisher,
        result_queue=config.rabbitmq_result_queue,
        client_store=client_store,
        file_store=file_store,
        reprocess_terminal_batches=config.reprocess_terminal_batches,
        publish_on_missing_profile=config.publish_on_missing_profile,
    )


def _create_consumer(parameters, orchestrator):
    """Factory for BatchConsumer to avoid circular import."""
    from batch_orchestrator.services.consumer import BatchConsumer

    return BatchConsumer(
        parameters,
        exchange=config.rabbitmq_exchange,
        queue=config.rabbitmq_queue,
        result_queue=config.rabbitmq_result_queue,
        orchestrator=orchestrator,
        dead_letter_exchange=config.rabbitmq_dead_letter_exchange,
        recovery_interval=config.rabbitmq_recovery_interval,
    )


class DependenciesContainer(DeclarativeContainer):
    """DI container for the application."""

    # Session with default credentials
    session = providers.Singleton(_create_session)

    # Compute endpoint dependency chain
    lambda_boto_client = providers.Singleton(
        _create_lambda_boto_client,
        session=session,
    )

    lambda_client = providers.Singleton(
        LambdaClient,
        client=lambda_boto_client,
    )

    invoker = providers.Singleton(
        _create_invoker,
        lambda_client=lambda_client,
    )

    routing_table = providers.Singleton(_create_routing_table)

    router = providers.Singleton(
        _create_router,
        routing_table=routing_table,
        invoker=invoker,
    )

    # Relational store dependency chain
    engine = providers.Singleton(
        create_database_engine,
        database_url=config.database_url,
    )

    batch_store = providers.Singleton(_create_store, "BatchStore", engine=engine)
    profile_store = providers.Singleton(_create_store, "ProfileStore", engine=engine)
    log_store = providers.Singleton(_create_store, "LogStore", engine=engine)
    client_store = providers.Singleton(_create_store, "ClientStore", engine=engine)
    file_store = providers.Singleton(_create_store, "PclFileStore", engine=engine)

    # Broker dependency chain (separate connections for consume and publish)
    connection_parameters = providers.Singleton(_create_connection_parameters)

    publisher = providers.Singleton(
        _create_publisher,
        parameters=connection_parameters,
    )

    orchestrator = providers.Singleton(
        _create_orchestrator,
        batch_store=batch_store,
        profile_store=profile_store,
        log_store=log_store,
        client_store=client_store,
        file_store=file_store,
        router=router,
        publisher=publisher,
    )

    consumer = providers.Singleton(
        _create_consumer,
        parameters=connection_parameters,
        orchestrator=orchestrator,
    )
