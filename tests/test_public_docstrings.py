"""Public persistence and registry methods document their arguments and results."""

import inspect

import pytest

from src.orchestrator.agent.tools import ToolRegistry
from src.services.flow_repository import FlowRepository
from src.services.state_store import SecureStateStore


@pytest.mark.parametrize(
    "method",
    [
        FlowRepository.get_active_flow,
        FlowRepository.clear_active_flow,
        FlowRepository.has_any_active_flow,
        FlowRepository.clear_all_user_flows,
        SecureStateStore.read,
        SecureStateStore.delete,
        SecureStateStore.scan,
        ToolRegistry.get,
        ToolRegistry.schemas,
    ],
    ids=lambda m: m.__qualname__,
)
def test_documents_return_value(method):
    doc = inspect.getdoc(method)
    assert doc
    assert "Returns:" in doc
