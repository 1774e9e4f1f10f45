"""Operation dispatch and status correlation."""

from model_gateway.routing.correlator import Correlator
from model_gateway.routing.dispatcher import Dispatcher
from model_gateway.routing.identifiers import new_operation_id

__all__ = ["Correlator", "Dispatcher", "new_operation_id"]
