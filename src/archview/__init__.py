"""🕸️ archview - Data lineage graph engine.

Quick Start:
    from archview import LineageSession, FilterCriteria, create_services
    from archview.config import get_settings

    session = LineageSession(create_services(get_settings()))
    session.reload(FilterCriteria(datafactory_ids=["retail_data_platform"]))

    session.select_table("dim_customers")    # lazy columns
    session.focus("dim_customers")           # ancestors + descendants only
    view = session.view()                    # positioned nodes, styled edges

Pure graph functions live in ``archview.graph``:
    from archview.graph import derive_arches, closure, layout
"""

from archview.errors import (
    ArchviewError,
    ImportValidationError,
    InvalidArchError,
    ServiceError,
    ServiceNotFoundError,
    WorkflowError,
)
from archview.graph import Arch, FilterCriteria, GraphView, Table
from archview.notifications import Notice, Notifier
from archview.services import Services, create_services
from archview.session import LineageSession

__version__ = "1.0.0"

__all__ = [
    "Arch",
    "ArchviewError",
    "FilterCriteria",
    "GraphView",
    "ImportValidationError",
    "InvalidArchError",
    "LineageSession",
    "Notice",
    "Notifier",
    "ServiceError",
    "ServiceNotFoundError",
    "Services",
    "Table",
    "WorkflowError",
    "__version__",
    "create_services",
]
