"""
Payment and refund routes.

Routes only translate between HTTP and the processor: the request body
becomes a Payment, the processor returns a result, and the result's
error_code picks the status code. Business failures are never raised here.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from paygate.core.limiter import limiter, payment_rate_limit
from paygate.schemas.payment import PaymentRequest
from paygate.schemas.results import OperationResult
from paygate.services.payment_processor import PaymentProcessor
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_BY_ERROR_CODE = {
    "validation_error": 422,
    "unsupported_method": 400,
    "payment_declined": 402,
    "not_found": 404,
    "configuration_error": 500,
    "backend_error": 502,
    "database_error": 503,
    "timeout": 504,
}


def get_processor(request: Request) -> PaymentProcessor:
    """Processor built at startup and stored on the app state"""
    return request.app.state.processor


def to_response(result: OperationResult) -> JSONResponse:
    status_code = 200 if result.success else STATUS_BY_ERROR_CODE.get(result.error_code, 500)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post("")
@limiter.limit(payment_rate_limit)
async def create_payment(
    request: Request,
    payload: PaymentRequest,
    processor: PaymentProcessor = Depends(get_processor),
):
    """Validate and charge a payment. Resubmitting the same id replays the first outcome."""
    payment = payload.to_payment()
    result = await processor.handle_payment(payment)
    logger.info(f"Payment {payment.id} finished: success={result.success}")
    return to_response(result)


@router.post("/{transaction_id}/refund")
@limiter.limit(payment_rate_limit)
async def refund_payment(
    request: Request,
    transaction_id: str,
    payload: PaymentRequest,
    processor: PaymentProcessor = Depends(get_processor),
):
    """Fully refund a transaction; the body describes the original payment."""
    payment = payload.to_payment()
    result = await processor.handle_refund(payment, transaction_id)
    logger.info(f"Refund of {transaction_id} finished: success={result.success}")
    return to_response(result)
