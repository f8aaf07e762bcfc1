"""Durable SQL store for the orchestrator service."""

from services.action.orchestrator.data.repository import SqlOrchestratorStore
from services.action.orchestrator.data.runtime import OrchestratorSqlRuntime

__all__ = ["OrchestratorSqlRuntime", "SqlOrchestratorStore"]
