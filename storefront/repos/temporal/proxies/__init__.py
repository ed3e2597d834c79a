from .cancellation import WorkflowCancellationRequestRepositoryProxy
from .gateway import WorkflowPaymentGatewayProxy
from .orders import WorkflowOrderRepositoryProxy
from .refunds import WorkflowRefundRepositoryProxy

__all__ = [
    "WorkflowCancellationRequestRepositoryProxy",
    "WorkflowOrderRepositoryProxy",
    "WorkflowPaymentGatewayProxy",
    "WorkflowRefundRepositoryProxy",
]
