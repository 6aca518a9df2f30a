"""One state machine per agent, plus dispatch."""

from qube_mesh.workflows.base import AgentWorkflow
from qube_mesh.workflows.contract_amendment import ContractAmendmentWorkflow
from qube_mesh.workflows.contract_extension import ContractExtensionWorkflow
from qube_mesh.workflows.contract_termination import (
    ContractTerminationWorkflow,
    TerminationMode,
    normalize_termination_status,
)
from qube_mesh.workflows.registry import (
    WORKFLOWS,
    WORKFLOWS_BY_KEY,
    default_scenario_key,
    run_agent_workflow,
    workflow_for,
)
from qube_mesh.workflows.supplier_offboarding import SupplierOffboardingWorkflow
from qube_mesh.workflows.supplier_profile_update import SupplierProfileUpdateWorkflow

__all__ = [
    "AgentWorkflow",
    "ContractAmendmentWorkflow",
    "ContractExtensionWorkflow",
    "ContractTerminationWorkflow",
    "SupplierOffboardingWorkflow",
    "SupplierProfileUpdateWorkflow",
    "TerminationMode",
    "WORKFLOWS",
    "WORKFLOWS_BY_KEY",
    "default_scenario_key",
    "normalize_termination_status",
    "run_agent_workflow",
    "workflow_for",
]
